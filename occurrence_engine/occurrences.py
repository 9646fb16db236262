"""Status mutation helpers used by the presentation layer.

Every helper takes the occurrence list and returns a new one, or the input
list itself when the call is invalid or changes nothing.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Optional

from occurrence_engine.dedupe import effective_slot
from occurrence_engine.planner import occurrence_id
from occurrence_engine.schema import NO_TIME_SLOT, PLANNED, STATUSES, Occurrence
from occurrence_engine.timeutil import add_minutes, coerce_date, coerce_duration, normalize_time


def list_by_date(occurrences: list[Occurrence], day) -> list[Occurrence]:
    target = coerce_date(day)
    if target is None:
        return []
    return [occ for occ in occurrences if occ is not None and occ.date == target]


def list_for_action(occurrences: list[Occurrence], action_id: str) -> list[Occurrence]:
    if not action_id:
        return []
    return [occ for occ in occurrences if occ is not None and occ.action_id == action_id]


def _slot_of(start) -> Optional[str]:
    if start is None:
        return NO_TIME_SLOT
    return normalize_time(start)


def _matches_slot(occ: Occurrence, action_id: str, day, slot: str) -> bool:
    if occ is None or occ.action_id != action_id or occ.date != day:
        return False
    if slot == NO_TIME_SLOT:
        return occ.start is None and (effective_slot(occ) or NO_TIME_SLOT) == NO_TIME_SLOT
    return effective_slot(occ) == slot or occ.start == slot


def add_occurrence(
    occurrences: list[Occurrence], action_id: str, day, start: Optional[str], duration_minutes=None
) -> list[Occurrence]:
    """Append a planned row unless the (action, date, slot) key is taken."""

    target = coerce_date(day)
    slot = _slot_of(start)
    if not action_id or target is None or slot is None:
        return occurrences
    if any(_matches_slot(occ, action_id, target, slot) for occ in occurrences):
        return occurrences
    duration = coerce_duration(duration_minutes)
    timed = slot != NO_TIME_SLOT
    created = Occurrence(
        id=occurrence_id(action_id, target, slot),
        action_id=action_id,
        date=target,
        start=slot if timed else None,
        slot_key=slot,
        duration_minutes=duration,
        end=add_minutes(slot, duration) if timed and duration else None,
    )
    return [*occurrences, created]


def delete_occurrence(occurrences: list[Occurrence], target_id: str) -> list[Occurrence]:
    if not target_id:
        return occurrences
    kept = [occ for occ in occurrences if occ is None or occ.id != target_id]
    return kept if len(kept) != len(occurrences) else occurrences


def _with_status(occ: Occurrence, status: str, now: Optional[datetime]) -> Occurrence:
    if occ.status == status:
        return occ
    return replace(occ, status=status, updated_at=now if now is not None else occ.updated_at)


def set_status_by_id(
    occurrences: list[Occurrence], target_id: str, status: str, now: Optional[datetime] = None
) -> list[Occurrence]:
    if not target_id or status not in STATUSES:
        return occurrences
    changed = False
    result = []
    for occ in occurrences:
        if occ is not None and occ.id == target_id:
            updated = _with_status(occ, status, now)
            changed = changed or updated is not occ
            result.append(updated)
        else:
            result.append(occ)
    return result if changed else occurrences


def set_status_for_action_date(
    occurrences: list[Occurrence], action_id: str, day, status: str, now: Optional[datetime] = None
) -> list[Occurrence]:
    """Apply one status to every row of an action on a date."""

    target = coerce_date(day)
    if not action_id or target is None or status not in STATUSES:
        return occurrences
    changed = False
    result = []
    for occ in occurrences:
        if occ is not None and occ.action_id == action_id and occ.date == target:
            updated = _with_status(occ, status, now)
            changed = changed or updated is not occ
            result.append(updated)
        else:
            result.append(occ)
    return result if changed else occurrences


def upsert_by_slot(
    occurrences: list[Occurrence],
    action_id: str,
    day,
    start: Optional[str],
    status: str = PLANNED,
    duration_minutes=None,
    now: Optional[datetime] = None,
) -> list[Occurrence]:
    """Set the status of the row at (action, date, slot), creating it if absent.

    The first row matching the slot, by effective slot or nominal start, is
    updated; a second call with the same arguments is a no-op.
    """
    target = coerce_date(day)
    slot = _slot_of(start)
    if not action_id or target is None or slot is None or status not in STATUSES:
        return occurrences

    for index, occ in enumerate(occurrences):
        if not _matches_slot(occ, action_id, target, slot):
            continue
        updated = _with_status(occ, status, now)
        duration = coerce_duration(duration_minutes)
        if duration is not None and updated.duration_minutes != duration:
            updated = replace(updated, duration_minutes=duration)
        if updated is occ:
            return occurrences
        result = list(occurrences)
        result[index] = updated
        return result

    created = add_occurrence(occurrences, action_id, target, start, duration_minutes)
    if created is occurrences:
        return occurrences
    if status != PLANNED:
        created[-1] = replace(created[-1], status=status, updated_at=now)
    return created
