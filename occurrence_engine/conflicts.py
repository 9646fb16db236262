"""Same-day placement policies: exact, nearest and window gap-fill."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from typing import Iterable, Optional, Sequence

from occurrence_engine.config import DEFAULT_CONFIG, EngineConfig
from occurrence_engine.schema import FIXED, PLANNED, WINDOW, Occurrence
from occurrence_engine.timeutil import coerce_date, format_time, overlaps, parse_time

ANYTIME_CLASS = "anytime"


@dataclass(frozen=True)
class Placement:
    """Outcome of a fixed-time placement."""

    start: str
    conflict: bool


def classify_occurrence(occ: Occurrence) -> str:
    """Return ``fixed``, ``window`` or ``anytime``."""

    if occ.time_type == FIXED:
        return FIXED
    if occ.time_type == WINDOW:
        return WINDOW
    if occ.start is not None:
        return FIXED
    if occ.has_window_bounds or occ.resolved_start:
        return WINDOW
    return ANYTIME_CLASS


def _taken_intervals(occurrences: Iterable[Occurrence], day: date, ignore_id: Optional[str]) -> list[tuple[int, int]]:
    taken = []
    for occ in occurrences:
        if occ is None or occ.date != day or occ.id == ignore_id:
            continue
        start = parse_time(occ.start)
        if start is None:
            continue
        taken.append((start, occ.duration_minutes or 0))
    return taken


def _is_free(candidate: int, duration: int, taken: list[tuple[int, int]]) -> bool:
    return not any(overlaps(candidate, duration, start, length) for start, length in taken)


def resolve_exact(
    occurrences: Sequence[Occurrence],
    day,
    preferred_start: str,
    duration: int,
    ignore_id: Optional[str] = None,
) -> Placement:
    """Keep the chosen time; only the conflict flag reflects occupancy."""

    target = coerce_date(day)
    preferred = parse_time(preferred_start)
    if target is None or preferred is None:
        return Placement(start=preferred_start, conflict=True)

    taken = _taken_intervals(occurrences, target, ignore_id)
    return Placement(start=preferred_start, conflict=not _is_free(preferred, duration, taken))


def resolve_nearest(
    occurrences: Sequence[Occurrence],
    day,
    preferred_start: str,
    duration: int,
    candidate_slots: Sequence[str] = (),
    config: EngineConfig = DEFAULT_CONFIG,
    ignore_id: Optional[str] = None,
) -> Placement:
    """Keep the preferred time when free, otherwise move to the nearest free one.

    With candidate slots the search is limited to them (ties favor the later
    slot). Without, the day is scanned outward in fixed steps inside
    ``[day_start, day_end)``, trying later before earlier at each distance.
    When nothing is free the preferred start comes back flagged as a conflict.
    """

    target = coerce_date(day)
    preferred = parse_time(preferred_start)
    if target is None or preferred is None:
        return Placement(start=preferred_start, conflict=True)

    taken = _taken_intervals(occurrences, target, ignore_id)
    if _is_free(preferred, duration, taken):
        return Placement(start=preferred_start, conflict=False)

    lower = parse_time(config.day_start)
    upper = parse_time(config.day_end)

    slots = [parse_time(slot) for slot in candidate_slots]
    slots = [slot for slot in slots if slot is not None and lower <= slot < upper]
    if candidate_slots:
        best = None
        for slot in slots:
            if not _is_free(slot, duration, taken):
                continue
            distance = abs(slot - preferred)
            if best is None or distance < best[1] or (distance == best[1] and slot > best[0]):
                best = (slot, distance)
        if best is not None:
            return Placement(start=format_time(best[0]), conflict=False)
        return Placement(start=preferred_start, conflict=True)

    step = max(1, int(config.search_step_minutes))
    max_distance = max(preferred - lower, upper - preferred)
    for distance in range(step, max_distance + 1, step):
        later = preferred + distance
        if lower <= later < upper and _is_free(later, duration, taken):
            return Placement(start=format_time(later), conflict=False)
        earlier = preferred - distance
        if lower <= earlier < upper and _is_free(earlier, duration, taken):
            return Placement(start=format_time(earlier), conflict=False)

    return Placement(start=preferred_start, conflict=True)


def _merge_intervals(intervals: Iterable[tuple[int, int]]) -> list[tuple[int, int]]:
    ordered = sorted((start, end) for start, end in intervals if end > start)
    merged: list[tuple[int, int]] = []
    for start, end in ordered:
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def _find_gap(window_start: int, window_end: int, duration: int, occupied: Iterable[tuple[int, int]]) -> Optional[int]:
    if duration <= 0 or window_start + duration > window_end:
        return None
    cursor = window_start
    for block_start, block_end in _merge_intervals(occupied):
        if cursor + duration <= block_start:
            return cursor
        if block_end > cursor:
            cursor = block_end
        if cursor + duration > window_end:
            return None
    return cursor if cursor + duration <= window_end else None


def _fixed_interval(occ: Occurrence) -> Optional[tuple[int, int]]:
    start = parse_time(occ.start)
    duration = occ.duration_minutes or 0
    if start is None or duration <= 0:
        return None
    return start, start + duration


def _place_window(occ: Occurrence, occupied: list[tuple[int, int]]) -> Occurrence:
    window_start = parse_time(occ.window_start)
    window_end = parse_time(occ.window_end)
    duration = occ.duration_minutes or 0

    resolved = None
    if window_start is not None and window_end is not None:
        placement = _find_gap(window_start, window_end, duration, occupied)
        if placement is not None:
            resolved = format_time(placement)
            occupied.append((placement, placement + duration))

    conflict = resolved is None
    if occ.resolved_start == resolved and occ.conflict == conflict:
        return occ
    return replace(occ, resolved_start=resolved, conflict=conflict)


def resolve_window_gap(day, fixed_items: Sequence[Occurrence], window_item: Occurrence) -> Occurrence:
    """Place one window item in the first gap left by the fixed items.

    The nominal start of the window item is left untouched; only
    ``resolved_start`` and ``conflict`` change. The same object is returned
    when the placement is already current.
    """

    target = coerce_date(day)
    if target is None or window_item is None:
        return window_item
    occupied = []
    for occ in fixed_items:
        if occ is None or occ.date != target:
            continue
        interval = _fixed_interval(occ)
        if interval is not None:
            occupied.append(interval)
    return _place_window(window_item, occupied)


def resolve_window_conflicts_for_day(occurrences: list[Occurrence], day) -> list[Occurrence]:
    """Place every planned window item of one day around its fixed items.

    Window items are handled in order of window start then id, and each
    placed item occupies its slot for the ones after it. Returns the input
    list itself when no placement changed.
    """

    target = coerce_date(day)
    if target is None or not occurrences:
        return occurrences

    occupied: list[tuple[int, int]] = []
    window_items: list[tuple[int, Occurrence]] = []
    for index, occ in enumerate(occurrences):
        if occ is None or occ.date != target or occ.status != PLANNED:
            continue
        kind = classify_occurrence(occ)
        if kind == FIXED:
            interval = _fixed_interval(occ)
            if interval is not None:
                occupied.append(interval)
        elif kind == WINDOW:
            window_items.append((index, occ))

    if not window_items:
        return occurrences

    def window_order(item: tuple[int, Occurrence]):
        start = parse_time(item[1].window_start)
        return (start if start is not None else 24 * 60, item[1].id)

    result = occurrences
    for index, occ in sorted(window_items, key=window_order):
        placed = _place_window(occ, occupied)
        if placed is occ:
            continue
        if result is occurrences:
            result = list(occurrences)
        result[index] = placed
    return result
