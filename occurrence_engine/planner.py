"""Window materializer: expands recurrences into dated occurrences.

Two entry families share one pipeline (descriptor -> candidate dates ->
slots -> placement):

* ``ensure_window_for_action`` works from the inline schedule fields of a
  legacy action record over ``window_days`` days.
* ``ensure_window_from_rules`` works from first-class recurrence rules over
  an explicit date range, updates planned rows in place when a rule changes
  and flags planned rows as missed once ``now`` is past their end.

Every entry point returns the input snapshot itself when nothing changed.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from occurrence_engine.config import DEFAULT_CONFIG, EngineConfig
from occurrence_engine.conflicts import (
    ANYTIME_CLASS,
    classify_occurrence,
    resolve_exact,
    resolve_nearest,
    resolve_window_conflicts_for_day,
)
from occurrence_engine.dedupe import dedupe_occurrences, effective_slot, occurrence_key
from occurrence_engine.recurrence import (
    RecurrenceDescriptor,
    SlotSpec,
    candidate_dates,
    describe_action,
    describe_rule,
    slots_for_date,
    within_period,
)
from occurrence_engine.schema import (
    FIXED,
    MISSED,
    NO_TIME_SLOT,
    PLANNED,
    TERMINAL_STATUSES,
    TIME_SLOTS,
    WINDOW,
    Occurrence,
    RecurrenceRule,
    Snapshot,
)
from occurrence_engine.timeutil import add_minutes, build_window_dates, coerce_date, combine, date_range

logger = logging.getLogger(__name__)


def occurrence_id(action_id: str, day: date, slot_key: str, rule_id: Optional[str] = None) -> str:
    """Deterministic id derived from the natural key of an occurrence."""

    raw = f"{action_id}|{day.isoformat()}|{slot_key}|{rule_id or ''}"
    return "occ_" + hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]


def _same_items(before: list, after: list) -> bool:
    if before is after:
        return True
    if len(before) != len(after):
        return False
    return all(a is b for a, b in zip(before, after))


def _with_occurrences(snapshot: Snapshot, occurrences: list[Occurrence]) -> Snapshot:
    if _same_items(snapshot.occurrences, occurrences):
        return snapshot
    return replace(snapshot, occurrences=occurrences)


def _place_windows(occurrences: list[Occurrence], dates: Iterable[date]) -> list[Occurrence]:
    for day in dates:
        occurrences = resolve_window_conflicts_for_day(occurrences, day)
    return occurrences


# ---------------------------------------------------------------------------
# Legacy inline schedules
# ---------------------------------------------------------------------------


def _build_legacy_occurrence(
    descriptor: RecurrenceDescriptor,
    day: date,
    slot: SlotSpec,
    occurrences: list[Occurrence],
    candidates: list[str],
    config: EngineConfig,
) -> Occurrence:
    slot_key = slot.start or NO_TIME_SLOT
    start = slot.start
    conflict = False
    if slot.start is not None:
        if slot.exact:
            placement = resolve_exact(occurrences, day, slot.start, slot.duration)
        else:
            placement = resolve_nearest(occurrences, day, slot.start, slot.duration, candidates, config)
        start, conflict = placement.start, placement.conflict

    timed = slot.start is not None or slot.time_type == WINDOW
    return Occurrence(
        id=occurrence_id(descriptor.action_id, day, slot_key),
        action_id=descriptor.action_id,
        date=day,
        start=start,
        slot_key=slot_key,
        duration_minutes=slot.duration if timed else None,
        end=slot.end if start == slot.start else None,
        time_type=slot.time_type,
        window_start=slot.window_start,
        window_end=slot.window_end,
        conflict=conflict,
    )


def _prune_for_descriptor(
    occurrences: list[Occurrence], descriptor: RecurrenceDescriptor, dates: list[date], config: EngineConfig
) -> list[Occurrence]:
    """Drop planned rows of the action that the descriptor no longer wants."""

    date_set = set(dates)
    allowed: dict[date, set[str]] = {}
    if descriptor.time_policy == TIME_SLOTS:
        for day in dates:
            allowed[day] = {slot.start or NO_TIME_SLOT for slot in slots_for_date(descriptor, day, config)}

    kept = []
    for occ in occurrences:
        if occ is None or occ.action_id != descriptor.action_id or occ.date not in date_set or occ.status != PLANNED:
            kept.append(occ)
            continue
        if not within_period(descriptor, occ.date):
            continue
        if occ.date in allowed and effective_slot(occ) not in allowed[occ.date]:
            continue
        kept.append(occ)
    return kept


def ensure_window_for_action(
    snapshot: Snapshot,
    action_id: str,
    from_date,
    days: Optional[int] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Snapshot:
    """Materialize planned occurrences of one legacy action over a window.

    Args:
        snapshot: Current state.
        action_id: Action to expand.
        from_date: First day of the window.
        days: Window length, ``config.window_days`` when omitted.
        config: Engine configuration.

    Returns:
        A new snapshot, or the input itself when nothing changed.
    """
    action = snapshot.action_by_id(action_id) if action_id else None
    start = coerce_date(from_date)
    if action is None or start is None:
        return snapshot
    descriptor = describe_action(action, config)
    if descriptor is None:
        return snapshot

    dates = build_window_dates(start, days if days is not None else config.window_days)
    if not dates:
        return snapshot

    occurrences = _prune_for_descriptor(list(snapshot.occurrences), descriptor, dates, config)
    used = {
        (occ.action_id, occ.date, effective_slot(occ))
        for occ in occurrences
        if occ is not None and occ.action_id and occ.date and effective_slot(occ)
    }

    due_dates = candidate_dates(descriptor, dates)
    created = 0
    for day in due_dates:
        slots = slots_for_date(descriptor, day, config)
        candidates = [slot.start for slot in slots if slot.start]
        if len(candidates) < 2:
            candidates = []
        for slot in slots:
            key = (descriptor.action_id, day, slot.start or NO_TIME_SLOT)
            if key in used:
                continue
            occurrences.append(_build_legacy_occurrence(descriptor, day, slot, occurrences, candidates, config))
            used.add(key)
            created += 1

    occurrences = dedupe_occurrences(occurrences)
    occurrences = _place_windows(occurrences, due_dates)
    if created:
        logger.debug("Materialized %d occurrences for action %s from %s", created, action_id, start)
    return _with_occurrences(snapshot, occurrences)


def ensure_window_for_actions(
    snapshot: Snapshot,
    action_ids: Iterable[str],
    from_date,
    days: Optional[int] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Snapshot:
    result = snapshot
    for action_id in action_ids or ():
        result = ensure_window_for_action(result, action_id, from_date, days, config)
    return result


def regenerate_window_for_action(
    snapshot: Snapshot,
    action_id: str,
    from_date,
    days: Optional[int] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Snapshot:
    """Prune non-terminal rows of the action from ``from_date`` on, then re-expand."""

    pivot = coerce_date(from_date)
    if pivot is None or snapshot.action_by_id(action_id) is None:
        return snapshot
    pruned = [
        occ
        for occ in snapshot.occurrences
        if not (
            occ is not None
            and occ.action_id == action_id
            and occ.date is not None
            and occ.date >= pivot
            and occ.status not in TERMINAL_STATUSES
        )
    ]
    working = _with_occurrences(snapshot, pruned)
    result = ensure_window_for_action(working, action_id, pivot, days, config)
    if result is working:
        return working
    return _with_occurrences(snapshot, result.occurrences)


# ---------------------------------------------------------------------------
# Recurrence rules
# ---------------------------------------------------------------------------


def _resolve_range(from_date, to_date, now: datetime, config: EngineConfig) -> list[date]:
    today = now.date()
    start = coerce_date(from_date) or today - timedelta(days=config.lookback_days)
    end = coerce_date(to_date) or today + timedelta(days=config.horizon_days)
    if end < start:
        end = start
    return date_range(start, end)


def _rule_patch(slot: SlotSpec) -> dict:
    if slot.time_type == WINDOW:
        return {
            "time_type": WINDOW,
            "start": None,
            "slot_key": NO_TIME_SLOT,
            "window_start": slot.window_start,
            "window_end": slot.window_end,
            "duration_minutes": slot.duration,
        }
    return {
        "time_type": FIXED,
        "start": slot.start,
        "slot_key": slot.start,
        "end": slot.end or add_minutes(slot.start, slot.duration),
        "duration_minutes": slot.duration,
    }


def _apply_patch(occ: Occurrence, patch: dict) -> Occurrence:
    changes = {key: value for key, value in patch.items() if getattr(occ, key) != value}
    return replace(occ, **changes) if changes else occ


def _build_rule_occurrence(
    rule: RecurrenceRule, day: date, slot: SlotSpec, occurrences: list[Occurrence]
) -> Occurrence:
    patch = _rule_patch(slot)
    conflict = False
    if slot.start is not None:
        conflict = resolve_exact(occurrences, day, slot.start, slot.duration).conflict
    return Occurrence(
        id=occurrence_id(rule.action_id, day, patch["slot_key"], rule.id),
        action_id=rule.action_id,
        date=day,
        rule_id=rule.id,
        conflict=conflict,
        **patch,
    )


def end_instant(occ: Occurrence, config: EngineConfig = DEFAULT_CONFIG) -> Optional[datetime]:
    """Local instant after which a planned occurrence counts as missed."""

    kind = classify_occurrence(occ)
    if kind == FIXED and occ.start is not None:
        if occ.end:
            return combine(occ.date, occ.end)
        start = combine(occ.date, occ.start)
        if start is None:
            return None
        return start + timedelta(minutes=occ.duration_minutes or 0)
    if kind == ANYTIME_CLASS or kind == WINDOW:
        return combine(occ.date, occ.window_end or config.default_window_end)
    return None


def _mark_missed(
    occurrences: list[Occurrence],
    window: set[date],
    action_ids: set[str],
    now: datetime,
    config: EngineConfig,
) -> list[Occurrence]:
    grace = timedelta(minutes=max(0, config.missed_grace_minutes))
    result = occurrences
    for index, occ in enumerate(occurrences):
        if occ is None or occ.status != PLANNED or occ.date not in window or occ.action_id not in action_ids:
            continue
        end = end_instant(occ, config)
        if end is None or now <= end + grace:
            continue
        if result is occurrences:
            result = list(occurrences)
        result[index] = replace(occ, status=MISSED, updated_at=now)
    return result


def ensure_window_from_rules(
    snapshot: Snapshot,
    now: datetime,
    from_date=None,
    to_date=None,
    action_ids: Optional[Iterable[str]] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Snapshot:
    """Materialize occurrences for active recurrence rules over a date range.

    Args:
        snapshot: Current state.
        now: Caller-supplied current instant (local, naive).
        from_date: First day, ``now - lookback_days`` when omitted.
        to_date: Last day (inclusive), ``now + horizon_days`` when omitted.
        action_ids: Restrict to rules of these actions.
        config: Engine configuration.

    Returns:
        A new snapshot, or the input itself when nothing changed.
    """
    if not isinstance(now, datetime):
        return snapshot
    wanted = {aid for aid in action_ids if aid} if action_ids is not None else None
    descriptors = []
    for rule in snapshot.rules:
        if wanted is not None and (rule is None or rule.action_id not in wanted):
            continue
        descriptor = describe_rule(rule, config)
        if descriptor is not None:
            descriptors.append(descriptor)
    if not descriptors:
        return snapshot

    window_dates = _resolve_range(from_date, to_date, now, config)
    window = set(window_dates)
    occurrences = snapshot.occurrences

    by_rule_date: dict[tuple[str, date], int] = {}
    legacy_by_key: dict[tuple[str, date, str], int] = {}
    taken: dict[tuple[str, date, str], int] = {}
    for index, occ in enumerate(occurrences):
        if occ is None or occ.date not in window:
            continue
        slot = effective_slot(occ)
        if occ.action_id and slot:
            taken.setdefault(occurrence_key(occ.action_id, occ.date, slot), index)
        if occ.rule_id:
            by_rule_date.setdefault((occ.rule_id, occ.date), index)
            continue
        if occ.action_id and slot:
            legacy_by_key.setdefault((occ.action_id, occ.date, slot), index)

    result = occurrences
    claimed = set(by_rule_date.values())
    created = 0

    def put(index: int, updated: Occurrence) -> None:
        nonlocal result
        if updated is result[index]:
            return
        if result is occurrences:
            result = list(occurrences)
        result[index] = updated

    def move(index: int, current: Occurrence, patch: dict) -> None:
        # A planned row only moves onto a slot no other row of the action holds.
        old_key = occurrence_key(current.action_id, current.date, effective_slot(current))
        new_key = occurrence_key(current.action_id, current.date, patch["slot_key"])
        if new_key != old_key and taken.get(new_key, index) != index:
            return
        put(index, _apply_patch(current, patch))
        if new_key != old_key:
            if taken.get(old_key) == index:
                del taken[old_key]
            taken[new_key] = index

    for descriptor in descriptors:
        rule = descriptor.source.rule
        for day in candidate_dates(descriptor, window_dates):
            slot = slots_for_date(descriptor, day, config)[0]
            patch = {"rule_id": rule.id, **_rule_patch(slot)}
            rule_key = (rule.id, day)

            if rule_key in by_rule_date:
                index = by_rule_date[rule_key]
                if result[index].status == PLANNED:
                    move(index, result[index], patch)
                continue

            key = occurrence_key(rule.action_id, day, patch["slot_key"])
            legacy_index = legacy_by_key.get(key)
            if legacy_index is not None and legacy_index not in claimed:
                current = result[legacy_index]
                if current.status == PLANNED:
                    put(legacy_index, _apply_patch(current, patch))
                by_rule_date[rule_key] = legacy_index
                claimed.add(legacy_index)
                continue

            if key in taken:
                logger.debug("Rule %s skips %s: slot %s already held", rule.id, day, patch["slot_key"])
                continue

            if result is occurrences:
                result = list(occurrences)
            result.append(_build_rule_occurrence(rule, day, slot, result))
            by_rule_date[rule_key] = len(result) - 1
            claimed.add(len(result) - 1)
            taken[key] = len(result) - 1
            created += 1

    scoped = {descriptor.action_id for descriptor in descriptors}
    result = _mark_missed(result, window, scoped, now, config)
    result = _place_windows(result, window_dates)

    if created:
        logger.debug("Materialized %d rule occurrences between %s and %s", created, window_dates[0], window_dates[-1])
    return _with_occurrences(snapshot, result)


def regenerate_window_from_rules(
    snapshot: Snapshot,
    action_id: str,
    now: datetime,
    from_date=None,
    to_date=None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Snapshot:
    """Drop planned rows of one action inside the range, then re-expand its rules."""

    if not action_id or not isinstance(now, datetime):
        return snapshot
    window_dates = _resolve_range(from_date, to_date, now, config)
    window = set(window_dates)
    pruned = [
        occ
        for occ in snapshot.occurrences
        if not (occ is not None and occ.action_id == action_id and occ.date in window and occ.status == PLANNED)
    ]
    working = _with_occurrences(snapshot, pruned)
    result = ensure_window_from_rules(working, now, window_dates[0], window_dates[-1], [action_id], config)
    return _with_occurrences(snapshot, result.occurrences)
