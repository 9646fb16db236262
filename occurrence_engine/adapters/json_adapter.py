"""JSON adapter for engine snapshots."""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Optional

from occurrence_engine.schema import (
    ACTION_KINDS,
    RULE_ONE_TIME,
    RULE_RECURRING,
    STATUSES,
    Action,
    Occurrence,
    RecurrenceRule,
    Schedule,
    SlotRange,
    Snapshot,
)

_VALID_RULE_KINDS = {RULE_RECURRING, RULE_ONE_TIME}


def _date(value: Any, label: str, index: int) -> Optional[date]:
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise ValueError(f"{label} {index}: malformed date {value!r}") from exc


def _datetime(value: Any, label: str, index: int) -> Optional[datetime]:
    if value in (None, ""):
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as exc:
        raise ValueError(f"{label} {index}: malformed timestamp {value!r}") from exc


def _int(value: Any, label: str, index: int) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{label} {index}: invalid integer {value!r}") from exc


def _require(item: Any, fields: tuple[str, ...], label: str, index: int) -> None:
    if not isinstance(item, dict):
        raise ValueError(f"{label} {index}: expected an object")
    missing = [field for field in fields if not item.get(field)]
    if missing:
        raise ValueError(f"{label} {index}: missing required fields {missing}")


def _days(value: Any, label: str, index: int) -> tuple[int, ...]:
    if value in (None, ""):
        return ()
    if not isinstance(value, list):
        raise ValueError(f"{label} {index}: days_of_week must be a list")
    return tuple(_int(day, label, index) for day in value)


def _parse_action(item: dict, index: int) -> Action:
    _require(item, ("id",), "Action", index)
    kind = str(item.get("kind") or "RECURRING").strip().upper()
    if kind not in ACTION_KINDS:
        raise ValueError(f"Action {index}: invalid kind '{kind}'")

    weekly_raw = item.get("weekly_slots") or {}
    if not isinstance(weekly_raw, dict):
        raise ValueError(f"Action {index}: weekly_slots must be an object")
    weekly_slots = {}
    for day, slots in weekly_raw.items():
        weekly_slots[_int(day, "Action", index)] = tuple(
            SlotRange(start=slot.get("start"), end=slot.get("end")) for slot in slots or [] if isinstance(slot, dict)
        )

    schedule_raw = item.get("schedule")
    schedule = None
    if isinstance(schedule_raw, dict):
        schedule = Schedule(
            days_of_week=_days(schedule_raw.get("days_of_week"), "Action", index),
            time_slots=tuple(schedule_raw.get("time_slots") or ()),
            duration_minutes=_int(schedule_raw.get("duration_minutes"), "Action", index),
        )

    return Action(
        id=str(item["id"]).strip(),
        category_id=str(item.get("category_id") or ""),
        kind=kind,
        days_of_week=_days(item.get("days_of_week"), "Action", index),
        time_mode=item.get("time_mode"),
        start_time=item.get("start_time"),
        time_slots=tuple(item.get("time_slots") or ()),
        weekly_slots=weekly_slots,
        duration_minutes=_int(item.get("duration_minutes"), "Action", index),
        one_off_date=_date(item.get("one_off_date"), "Action", index),
        active_from=_date(item.get("active_from"), "Action", index),
        active_to=_date(item.get("active_to"), "Action", index),
        window_start=item.get("window_start"),
        window_end=item.get("window_end"),
        start_at=item.get("start_at"),
        repeat=item.get("repeat"),
        schedule=schedule,
        title=str(item.get("title") or ""),
    )


def _parse_rule(item: dict, index: int) -> RecurrenceRule:
    _require(item, ("id", "action_id"), "Rule", index)
    kind = str(item.get("kind") or RULE_RECURRING).strip()
    if kind not in _VALID_RULE_KINDS:
        raise ValueError(f"Rule {index}: invalid kind '{kind}'")
    return RecurrenceRule(
        id=str(item["id"]),
        action_id=str(item["action_id"]),
        kind=kind,
        days_of_week=_days(item.get("days_of_week"), "Rule", index),
        start_date=_date(item.get("start_date"), "Rule", index),
        end_date=_date(item.get("end_date"), "Rule", index),
        time_type=str(item.get("time_type") or "fixed"),
        start_time=item.get("start_time"),
        end_time=item.get("end_time"),
        window_start=item.get("window_start"),
        window_end=item.get("window_end"),
        duration_minutes=_int(item.get("duration_minutes"), "Rule", index),
        source_key=str(item.get("source_key") or ""),
        is_active=bool(item.get("is_active", True)),
        created_at=_datetime(item.get("created_at"), "Rule", index),
        updated_at=_datetime(item.get("updated_at"), "Rule", index),
    )


def _parse_occurrence(item: dict, index: int) -> Occurrence:
    _require(item, ("id", "action_id", "date"), "Occurrence", index)
    status = str(item.get("status") or "planned").strip()
    if status not in STATUSES:
        raise ValueError(f"Occurrence {index}: invalid status '{status}'")

    points = item.get("points")
    if points is not None:
        try:
            points = float(points)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Occurrence {index}: invalid points") from exc

    return Occurrence(
        id=str(item["id"]),
        action_id=str(item["action_id"]),
        date=_date(item["date"], "Occurrence", index),
        start=item.get("start") or None,
        slot_key=item.get("slot_key") or None,
        duration_minutes=_int(item.get("duration_minutes"), "Occurrence", index),
        end=item.get("end") or None,
        status=status,
        rule_id=item.get("rule_id") or None,
        time_type=item.get("time_type") or None,
        window_start=item.get("window_start") or None,
        window_end=item.get("window_end") or None,
        resolved_start=item.get("resolved_start") or None,
        conflict=bool(item.get("conflict", False)),
        points=points,
        priority=item.get("priority") or None,
        updated_at=_datetime(item.get("updated_at"), "Occurrence", index),
    )


def snapshot_from_dict(payload: dict) -> Snapshot:
    """Build a snapshot from decoded JSON; items are numbered from 1."""

    if not isinstance(payload, dict):
        raise ValueError("JSON payload must be an object with actions, rules and occurrences")
    sections = {}
    for name in ("actions", "rules", "occurrences"):
        value = payload.get(name) or []
        if not isinstance(value, list):
            raise ValueError(f"'{name}' must be a list of objects")
        sections[name] = value
    return Snapshot(
        actions=[_parse_action(item, i) for i, item in enumerate(sections["actions"], start=1)],
        rules=[_parse_rule(item, i) for i, item in enumerate(sections["rules"], start=1)],
        occurrences=[_parse_occurrence(item, i) for i, item in enumerate(sections["occurrences"], start=1)],
    )


def _encode(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, tuple):
        return [_encode(v) for v in value]
    return value


def _action_to_dict(action: Action) -> dict:
    return {
        "id": action.id,
        "category_id": action.category_id,
        "kind": action.kind,
        "title": action.title,
        "days_of_week": list(action.days_of_week),
        "time_mode": action.time_mode,
        "start_time": action.start_time,
        "time_slots": list(action.time_slots),
        "weekly_slots": {
            str(day): [{"start": slot.start, "end": slot.end} for slot in slots]
            for day, slots in sorted(action.weekly_slots.items())
        },
        "duration_minutes": action.duration_minutes,
        "one_off_date": _encode(action.one_off_date),
        "active_from": _encode(action.active_from),
        "active_to": _encode(action.active_to),
        "window_start": action.window_start,
        "window_end": action.window_end,
        "start_at": action.start_at,
        "repeat": action.repeat,
        "schedule": None
        if action.schedule is None
        else {
            "days_of_week": list(action.schedule.days_of_week),
            "time_slots": list(action.schedule.time_slots),
            "duration_minutes": action.schedule.duration_minutes,
        },
    }


def _record_to_dict(record: Any, names: tuple[str, ...]) -> dict:
    return {name: _encode(getattr(record, name)) for name in names}


_RULE_FIELDS = tuple(RecurrenceRule.__dataclass_fields__)
_OCCURRENCE_FIELDS = tuple(Occurrence.__dataclass_fields__)


def snapshot_to_dict(snapshot: Snapshot) -> dict:
    return {
        "actions": [_action_to_dict(action) for action in snapshot.actions],
        "rules": [_record_to_dict(rule, _RULE_FIELDS) for rule in snapshot.rules],
        "occurrences": [_record_to_dict(occ, _OCCURRENCE_FIELDS) for occ in snapshot.occurrences],
    }


def parse(file_path: str) -> Snapshot:
    """Parse a JSON snapshot file."""

    with open(file_path, encoding="utf-8") as handle:
        payload = json.load(handle)
    return snapshot_from_dict(payload)


def dump(snapshot: Snapshot, file_path: str) -> None:
    with open(file_path, "w", encoding="utf-8") as handle:
        json.dump(snapshot_to_dict(snapshot), handle, indent=2)
