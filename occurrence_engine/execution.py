"""Pick the occurrence to act on now."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional

from occurrence_engine.conflicts import ANYTIME_CLASS, classify_occurrence
from occurrence_engine.schema import FIXED, PLANNED, TERMINAL_STATUSES, WINDOW, Occurrence, Snapshot
from occurrence_engine.timeutil import coerce_date, normalize_time, parse_time

NOT_FOUND = "not_found"
FINAL = "final"
OK = "ok"

# Sorts after every valid clock value.
NO_TIME = "99:99"

CLASS_RANK = {FIXED: 0, WINDOW: 1, ANYTIME_CLASS: 2}
PRIORITY_RANK = {"primary": 3, "secondary": 2, "bonus": 1}


@dataclass(frozen=True)
class ExecutionResult:
    occurrence_id: Optional[str]
    kind: str


@dataclass(frozen=True)
class Candidate:
    """Alternative the user may start instead of the suggested occurrence."""

    occurrence: Occurrence
    kind: str
    warning: bool


def effective_time(occ: Occurrence) -> str:
    """Start for fixed rows, resolved start for the others, else ``99:99``."""

    if classify_occurrence(occ) == FIXED:
        return normalize_time(occ.start or occ.slot_key) or NO_TIME
    return normalize_time(occ.resolved_start) or NO_TIME


def _execution_order(occ: Occurrence) -> tuple:
    return (CLASS_RANK[classify_occurrence(occ)], effective_time(occ), occ.action_id or "", occ.id or "")


def resolve_executable_occurrence(
    snapshot: Snapshot,
    now: datetime,
    day=None,
    action_ids: Iterable[str] = (),
) -> ExecutionResult:
    """Select the single planned occurrence to execute.

    Args:
        snapshot: Current state.
        now: Caller-supplied current instant; its date is used when ``day``
            is omitted.
        day: Calendar day to resolve.
        action_ids: Eligible actions.

    Returns:
        ``ExecutionResult`` with kind ``not_found``, ``final`` or ``ok``.
    """
    target = coerce_date(day) or coerce_date(now)
    eligible = {aid for aid in action_ids or () if aid}
    if target is None or not eligible:
        return ExecutionResult(None, NOT_FOUND)

    candidates = [
        occ
        for occ in snapshot.occurrences
        if occ is not None and occ.date == target and occ.action_id in eligible and occ.status == PLANNED
    ]
    if not candidates:
        return ExecutionResult(None, NOT_FOUND)

    picked = min(candidates, key=_execution_order)
    if not picked.id:
        return ExecutionResult(None, NOT_FOUND)
    if picked.status in TERMINAL_STATUSES:
        return ExecutionResult(picked.id, FINAL)
    return ExecutionResult(picked.id, OK)


def _priority_rank(occ: Occurrence) -> int:
    key = occ.priority.strip().lower() if isinstance(occ.priority, str) else ""
    return PRIORITY_RANK.get(key, 0)


def _tie_break(occ: Occurrence) -> tuple:
    return (-_priority_rank(occ), occ.action_id or "", occ.id or "")


def _start_minutes(occ: Occurrence) -> Optional[int]:
    if classify_occurrence(occ) != FIXED:
        return None
    return parse_time(occ.start or occ.slot_key)


def _now_minutes(target: date, now: datetime) -> int:
    # Any other day considers every slot.
    if target != now.date():
        return -1
    return now.hour * 60 + now.minute


def _planned_on(occurrences: Iterable[Occurrence], target: date) -> list[Occurrence]:
    return [occ for occ in occurrences if occ is not None and occ.status == PLANNED and occ.date == target]


def _timed(occurrences: list[Occurrence]) -> list[tuple[int, Occurrence]]:
    timed = []
    for occ in occurrences:
        minutes = _start_minutes(occ)
        if minutes is not None:
            timed.append((minutes, occ))
    timed.sort(key=lambda item: (item[0], _tie_break(item[1])))
    return timed


def next_planned_occurrence(
    occurrences: list[Occurrence], now: datetime, day=None
) -> Optional[Occurrence]:
    """The day's next fixed occurrence, else its earliest, else any other.

    Fixed rows at or after the current time win; priority breaks ties between
    equal start times and orders the untimed fallback.
    """
    target = coerce_date(day) or coerce_date(now)
    if target is None or not isinstance(now, datetime):
        return None
    planned = _planned_on(occurrences, target)
    if not planned:
        return None

    timed = _timed(planned)
    current = _now_minutes(target, now)
    upcoming = [occ for minutes, occ in timed if minutes >= current]
    if upcoming:
        return upcoming[0]
    if timed:
        return timed[0][1]

    others = sorted((occ for occ in planned if _start_minutes(occ) is None), key=_tie_break)
    return others[0] if others else None


def alternative_candidates(
    occurrences: list[Occurrence],
    now: datetime,
    day=None,
    limit: int = 4,
    exclude_id: Optional[str] = None,
) -> list[Candidate]:
    """Untimed rows first, then fixed rows still ahead (flagged with a warning)."""

    target = coerce_date(day) or coerce_date(now)
    if target is None or not isinstance(now, datetime):
        return []
    planned = [occ for occ in _planned_on(occurrences, target) if occ.id != exclude_id]

    flexible = sorted((occ for occ in planned if _start_minutes(occ) is None), key=_tie_break)
    current = _now_minutes(target, now)
    ahead = [(minutes, occ) for minutes, occ in _timed(planned) if minutes > current]

    candidates = [Candidate(occ, "non_fixed", False) for occ in flexible]
    candidates.extend(Candidate(occ, "fixed_future", True) for _, occ in ahead)
    return candidates[: max(0, limit)]
