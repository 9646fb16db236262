"""Canonicalize an occurrence collection by (action, date, slot)."""

from __future__ import annotations

from datetime import date
from typing import Optional

from occurrence_engine.schema import DONE, PLANNED, SKIPPED, Occurrence

STATUS_RANK = {DONE: 3, PLANNED: 2, SKIPPED: 1}


def effective_slot(occ: Occurrence) -> Optional[str]:
    """Canonical slot key: the placed slot, else the nominal start."""

    return occ.slot_key or occ.start or None


def occurrence_key(action_id: str, day: date, slot: str) -> tuple[str, date, str]:
    return (action_id, day, slot)


def dedupe_occurrences(occurrences: list[Occurrence]) -> list[Occurrence]:
    """Keep one row per key, preferring done > planned > skipped > others.

    Equal ranks keep the first-seen row. Rows without action id, date or
    slot pass through untouched. Returns the input list itself when there
    was nothing to drop.
    """

    seen: dict[tuple[str, date, str], int] = {}
    kept: list[Occurrence] = []
    dropped = False

    for occ in occurrences:
        slot = effective_slot(occ) if occ is not None else None
        if occ is None or not occ.action_id or occ.date is None or not slot:
            kept.append(occ)
            continue
        key = occurrence_key(occ.action_id, occ.date, slot)
        if key not in seen:
            seen[key] = len(kept)
            kept.append(occ)
            continue
        dropped = True
        index = seen[key]
        if STATUS_RANK.get(occ.status, 0) > STATUS_RANK.get(kept[index].status, 0):
            kept[index] = occ

    return kept if dropped else occurrences
