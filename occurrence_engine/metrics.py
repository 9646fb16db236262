"""Completion metrics folded from occurrence status history."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from occurrence_engine.schema import CANCELED, DONE, MISSED, PLANNED, SKIPPED, STATUSES, Occurrence, Snapshot
from occurrence_engine.timeutil import coerce_date, date_range

CANCELED_STATUSES = frozenset({CANCELED, SKIPPED})
KNOWN_STATUSES = frozenset(STATUSES) | {"in_progress"}

WINDOW_LENGTHS = {"today": 1, "7d": 7, "14d": 14, "90d": 90}


@dataclass
class Stats:
    expected: int = 0
    done: int = 0
    missed: int = 0
    canceled: int = 0
    planned: int = 0
    remaining: int = 0
    score: float = 0.0
    completion_rate: float = 0.0

    def add(self, occ: Occurrence) -> None:
        if is_legacy_anytime(occ):
            return
        status = normalize_status(occ.status)
        self.expected += 1
        if status == DONE:
            self.done += 1
            if isinstance(occ.points, (int, float)) and not isinstance(occ.points, bool):
                self.score += occ.points
        elif status in CANCELED_STATUSES:
            self.canceled += 1
        else:
            self.remaining += 1
        if status == MISSED:
            self.missed += 1
        if status == PLANNED:
            self.planned += 1

    def merge(self, other: "Stats") -> None:
        self.expected += other.expected
        self.done += other.done
        self.missed += other.missed
        self.canceled += other.canceled
        self.planned += other.planned
        self.remaining += other.remaining
        self.score += other.score
        self.finalize()

    def finalize(self) -> "Stats":
        self.completion_rate = self.done / self.expected if self.expected > 0 else 0.0
        return self

    def to_dict(self) -> dict:
        return {
            "expected": self.expected,
            "done": self.done,
            "missed": self.missed,
            "canceled": self.canceled,
            "planned": self.planned,
            "remaining": self.remaining,
            "score": self.score,
            "completion_rate": self.completion_rate,
        }


def normalize_status(raw) -> str:
    """Lower-cased status; anything unrecognized counts as planned."""

    value = raw.strip().lower() if isinstance(raw, str) else ""
    return value if value in KNOWN_STATUSES else PLANNED


def is_legacy_anytime(occ: Occurrence) -> bool:
    """Untimed rows without window bounds are placeholders, not commitments."""

    return occ.start is None and not occ.has_window_bounds


def window_bounds(name: str, today: date) -> tuple[date, date]:
    """Inclusive (from, to) for a named reporting window ending today."""

    key = name.strip().lower() if isinstance(name, str) else ""
    length = WINDOW_LENGTHS.get(key, 1)
    return today - timedelta(days=length - 1), today


def compute_stats(occurrences: Iterable[Occurrence]) -> Stats:
    stats = Stats()
    for occ in occurrences:
        if occ is not None:
            stats.add(occ)
    return stats.finalize()


def select_occurrences_in_range(
    snapshot: Snapshot,
    from_date,
    to_date,
    action_ids: Optional[Iterable[str]] = None,
    category_id: Optional[str] = None,
) -> list[Occurrence]:
    """Occurrences dated within [from_date, to_date], optionally filtered."""

    start, end = coerce_date(from_date), coerce_date(to_date)
    if start is None or end is None:
        return []
    wanted = {aid for aid in action_ids if aid} if action_ids is not None else None
    in_category = None
    if category_id:
        in_category = {a.id for a in snapshot.actions if a is not None and a.category_id == category_id}

    selected = []
    for occ in snapshot.occurrences:
        if occ is None or occ.date is None or occ.date < start or occ.date > end:
            continue
        if wanted is not None and occ.action_id not in wanted:
            continue
        if in_category is not None and occ.action_id not in in_category:
            continue
        selected.append(occ)
    return selected


def compute_daily_stats(
    snapshot: Snapshot,
    from_date,
    to_date,
    action_ids: Optional[Iterable[str]] = None,
    category_id: Optional[str] = None,
) -> tuple[dict[date, Stats], Stats]:
    """Per-day buckets for every date in range (empty days included) and totals."""

    start, end = coerce_date(from_date), coerce_date(to_date)
    if start is None or end is None:
        return {}, Stats()
    by_date = {day: Stats() for day in date_range(start, end)}
    for occ in select_occurrences_in_range(snapshot, start, end, action_ids, category_id):
        by_date[occ.date].add(occ)

    totals = Stats()
    for stats in by_date.values():
        stats.finalize()
        totals.merge(stats)
    return by_date, totals.finalize()


def compute_action_stats(
    snapshot: Snapshot,
    from_date,
    to_date,
    action_ids: Optional[Iterable[str]] = None,
    category_id: Optional[str] = None,
) -> dict[str, Stats]:
    by_action: dict[str, Stats] = {}
    for occ in select_occurrences_in_range(snapshot, from_date, to_date, action_ids, category_id):
        if not occ.action_id:
            continue
        by_action.setdefault(occ.action_id, Stats()).add(occ)
    return {action_id: by_action[action_id].finalize() for action_id in sorted(by_action)}


def compute_category_stats(
    snapshot: Snapshot,
    from_date,
    to_date,
    action_ids: Optional[Iterable[str]] = None,
    category_id: Optional[str] = None,
) -> dict[str, Stats]:
    """Action buckets merged by owning category; uncategorized actions are skipped."""

    categories = {a.id: a.category_id for a in snapshot.actions if a is not None}
    by_category: dict[str, Stats] = {}
    for action_id, stats in compute_action_stats(snapshot, from_date, to_date, action_ids, category_id).items():
        owner = categories.get(action_id) or ""
        if not owner:
            continue
        by_category.setdefault(owner, Stats()).merge(stats)
    return {key: by_category[key] for key in sorted(by_category)}
