"""CSV adapter for occurrence history exports."""

from __future__ import annotations

import csv
from datetime import date

from occurrence_engine.planner import occurrence_id
from occurrence_engine.schema import NO_TIME_SLOT, STATUSES, Occurrence
from occurrence_engine.timeutil import normalize_time

_REQUIRED_FIELDS = {"action_id", "date", "status"}


def _parse_row(row: dict, row_number: int) -> Occurrence:
    missing = sorted(field for field in _REQUIRED_FIELDS if not row.get(field))
    if missing:
        raise ValueError(f"Row {row_number}: missing required fields {missing}")

    try:
        day = date.fromisoformat(row["date"].strip())
    except ValueError as exc:
        raise ValueError(f"Row {row_number}: malformed date") from exc

    status = row["status"].strip()
    if status not in STATUSES:
        raise ValueError(f"Row {row_number}: invalid status '{status}'")

    start_raw = (row.get("start") or "").strip()
    start = normalize_time(start_raw) if start_raw else None
    if start_raw and start is None:
        raise ValueError(f"Row {row_number}: malformed start '{start_raw}'")

    duration_raw = row.get("duration_minutes")
    duration = None
    if duration_raw not in (None, ""):
        try:
            duration = int(duration_raw)
        except ValueError as exc:
            raise ValueError(f"Row {row_number}: invalid duration_minutes") from exc

    points_raw = row.get("points")
    points = None
    if points_raw not in (None, ""):
        try:
            points = float(points_raw)
        except ValueError as exc:
            raise ValueError(f"Row {row_number}: invalid points") from exc

    action_id = row["action_id"].strip()
    slot_key = start or NO_TIME_SLOT
    return Occurrence(
        id=(row.get("id") or "").strip() or occurrence_id(action_id, day, slot_key),
        action_id=action_id,
        date=day,
        start=start,
        slot_key=slot_key,
        duration_minutes=duration,
        status=status,
        points=points,
    )


def parse(file_path: str) -> list[Occurrence]:
    """Parse a CSV file into occurrence records."""

    with open(file_path, newline="", encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            return []

        occurrences: list[Occurrence] = []
        for row_number, row in enumerate(reader, start=2):
            occurrences.append(_parse_row(row, row_number))
        return occurrences
