"""Report assembly, CSV export and completion trend."""

from __future__ import annotations

import csv
import io
from datetime import datetime
from typing import Iterable, Optional

import numpy as np

from occurrence_engine.metrics import (
    Stats,
    compute_action_stats,
    compute_category_stats,
    compute_daily_stats,
    compute_stats,
    select_occurrences_in_range,
)
from occurrence_engine.schema import Snapshot
from occurrence_engine.timeutil import coerce_date

DAILY_COLUMNS = ["date", "expected", "done", "missed", "canceled", "planned", "score_pct"]
ACTION_COLUMNS = ["action_id", "title", "category_id", "expected", "done", "missed", "canceled", "planned", "score_pct"]


def _score_pct(row: dict) -> int:
    expected = row.get("expected") or 0
    return round(row.get("done", 0) / expected * 100) if expected > 0 else 0


def build_report(
    snapshot: Snapshot,
    from_date,
    to_date,
    generated_at: datetime,
    action_ids: Optional[Iterable[str]] = None,
    category_id: Optional[str] = None,
) -> dict:
    """Totals plus per-day, per-action and per-category rows for a date range.

    ``generated_at`` is stamped into the metadata as given; an invalid or
    inverted range yields empty sections and zeroed totals.
    """
    start, end = coerce_date(from_date), coerce_date(to_date)
    cleaned_ids = sorted({aid for aid in action_ids if aid}) if action_ids is not None else None
    cleaned_category = category_id.strip() if isinstance(category_id, str) and category_id.strip() else None
    meta = {
        "from": start.isoformat() if start else "",
        "to": end.isoformat() if end else "",
        "category_id": cleaned_category,
        "action_ids": cleaned_ids or None,
        "generated_at": generated_at.isoformat() if isinstance(generated_at, datetime) else "",
    }
    if start is None or end is None or end < start:
        return {"meta": meta, "totals": Stats().to_dict(), "by_date": [], "by_action": [], "by_category": []}

    occurrences = select_occurrences_in_range(snapshot, start, end, cleaned_ids, cleaned_category)
    by_date, _ = compute_daily_stats(snapshot, start, end, cleaned_ids, cleaned_category)
    actions = {a.id: a for a in snapshot.actions if a is not None}

    by_action = []
    for action_id, stats in compute_action_stats(snapshot, start, end, cleaned_ids, cleaned_category).items():
        action = actions.get(action_id)
        by_action.append(
            {
                "action_id": action_id,
                "title": action.title if action else "",
                "category_id": action.category_id if action else "",
                **stats.to_dict(),
            }
        )

    by_category = [
        {"category_id": key, **stats.to_dict()}
        for key, stats in compute_category_stats(snapshot, start, end, cleaned_ids, cleaned_category).items()
    ]

    return {
        "meta": meta,
        "totals": compute_stats(occurrences).to_dict(),
        "by_date": [{"date": day.isoformat(), **stats.to_dict()} for day, stats in sorted(by_date.items())],
        "by_action": by_action,
        "by_category": by_category,
    }


def _write_csv(columns: list[str], rows: list[list]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(columns)
    writer.writerows(rows)
    return buffer.getvalue()


def export_report_to_csv(report: dict) -> dict[str, str]:
    """Render the daily and per-action sections as CSV text."""

    daily_rows = [
        [
            row.get("date", ""),
            row.get("expected", 0),
            row.get("done", 0),
            row.get("missed", 0),
            row.get("canceled", 0),
            row.get("planned", 0),
            _score_pct(row),
        ]
        for row in report.get("by_date") or []
    ]
    action_rows = [
        [
            row.get("action_id", ""),
            row.get("title", ""),
            row.get("category_id", ""),
            row.get("expected", 0),
            row.get("done", 0),
            row.get("missed", 0),
            row.get("canceled", 0),
            row.get("planned", 0),
            _score_pct(row),
        ]
        for row in report.get("by_action") or []
    ]
    return {
        "daily": _write_csv(DAILY_COLUMNS, daily_rows),
        "actions": _write_csv(ACTION_COLUMNS, action_rows),
    }


def completion_trend(by_date: list[dict]) -> dict:
    """Mean, spread and per-day slope of the completion rate.

    Days with nothing expected are left out so that empty days do not drag
    the trend toward zero.
    """
    rates = [row["completion_rate"] for row in by_date if row.get("expected", 0) > 0]
    if not rates:
        return {"days": 0, "mean": 0.0, "std": 0.0, "slope": 0.0}

    values = np.asarray(rates, dtype=float)
    slope = 0.0
    if len(values) > 1:
        slope = float(np.polyfit(np.arange(len(values), dtype=float), values, 1)[0])
    return {
        "days": int(len(values)),
        "mean": float(np.mean(values)),
        "std": float(np.std(values)),
        "slope": slope,
    }
