"""Recurrence rules derived from legacy action fields.

Rules are upserted by their source key, a content hash of everything that
shapes the occurrences they produce. Re-deriving an unchanged action finds
the same keys and leaves the rule list untouched.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional

from occurrence_engine.config import DEFAULT_CONFIG, EngineConfig
from occurrence_engine.recurrence import (
    action_slots,
    base_duration,
    infer_time_mode,
    resolve_weekdays,
    schedule_slots,
    slot_duration,
    weekly_table,
)
from occurrence_engine.schema import (
    ANYTIME,
    FIXED,
    ONE_OFF,
    RULE_ONE_TIME,
    RULE_RECURRING,
    TIME_NONE,
    TIME_SLOTS,
    TIME_WINDOW,
    WINDOW,
    Action,
    RecurrenceRule,
    Snapshot,
)
from occurrence_engine.timeutil import normalize_time, time_from_stamp

logger = logging.getLogger(__name__)


def build_source_key(rule: RecurrenceRule) -> str:
    """Stable content hash of the fields that shape a rule's occurrences."""

    parts = [
        rule.action_id or "",
        rule.kind or "",
        rule.start_date.isoformat() if rule.start_date else "",
        rule.end_date.isoformat() if rule.end_date else "",
        ",".join(str(day) for day in rule.days_of_week),
        rule.time_type or "",
        rule.start_time or "",
        rule.end_time or "",
        rule.window_start or "",
        rule.window_end or "",
        str(rule.duration_minutes) if rule.duration_minutes else "",
    ]
    return hashlib.sha1("|".join(parts).encode("utf-8")).hexdigest()


def _keyed(rule: RecurrenceRule) -> RecurrenceRule:
    source_key = build_source_key(rule)
    return replace(rule, id=f"rule_{source_key[:16]}", source_key=source_key)


def build_rules_from_action(action: Action, config: EngineConfig = DEFAULT_CONFIG) -> list[RecurrenceRule]:
    """Derive the recurrence rules equivalent to an action's inline schedule."""

    if action is None or not action.id or action.kind == ANYTIME:
        return []

    if action.kind == ONE_OFF:
        if action.one_off_date is None:
            return []
        base = RecurrenceRule(id="", action_id=action.id, kind=RULE_ONE_TIME, start_date=action.one_off_date)
    else:
        days = resolve_weekdays(action)
        if not days:
            return []
        base = RecurrenceRule(
            id="",
            action_id=action.id,
            kind=RULE_RECURRING,
            days_of_week=days,
            start_date=action.active_from,
            end_date=action.active_to,
        )

    duration = base_duration(action, config)
    table = weekly_table(action)
    if table and base.kind == RULE_RECURRING:
        rules = []
        for day in sorted(table):
            if day not in base.days_of_week:
                continue
            for start, end in table[day]:
                rules.append(
                    _keyed(
                        replace(
                            base,
                            days_of_week=(day,),
                            time_type=FIXED,
                            start_time=start,
                            end_time=end,
                            duration_minutes=slot_duration(start, end, duration),
                        )
                    )
                )
        return rules

    mode = infer_time_mode(action)
    slots = action_slots(action) or schedule_slots(action)
    if mode == TIME_SLOTS and len(slots) > 1:
        return [
            _keyed(replace(base, time_type=FIXED, start_time=slot, duration_minutes=duration)) for slot in slots
        ]

    start_time = normalize_time(action.start_time) or (slots[0] if slots else None) or time_from_stamp(action.start_at)
    window_start = normalize_time(action.window_start)
    window_end = normalize_time(action.window_end)
    if mode in (TIME_WINDOW, TIME_NONE) or window_start or window_end or not start_time:
        return [
            _keyed(
                replace(
                    base,
                    time_type=WINDOW,
                    window_start=window_start,
                    window_end=window_end,
                    duration_minutes=duration,
                )
            )
        ]
    return [_keyed(replace(base, time_type=FIXED, start_time=start_time, duration_minutes=duration))]


def list_active_rules(snapshot: Snapshot, action_ids: Optional[Iterable[str]] = None) -> list[RecurrenceRule]:
    wanted = set(action_ids) if action_ids is not None else None
    return [
        rule
        for rule in snapshot.rules
        if rule is not None and rule.is_active and (wanted is None or rule.action_id in wanted)
    ]


def sync_rules_for_actions(
    snapshot: Snapshot,
    now: datetime,
    action_ids: Optional[Iterable[str]] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Snapshot:
    """Upsert the derived rules of each action by source key.

    Matching rules are refreshed and reactivated, new ones appended, and
    rules the action no longer derives are deactivated rather than deleted.
    Returns the input snapshot when the rule list is already current.
    """
    if not isinstance(now, datetime):
        return snapshot
    wanted = set(action_ids) if action_ids is not None else None
    actions = [a for a in snapshot.actions if a is not None and a.id and (wanted is None or a.id in wanted)]
    if not actions:
        return snapshot

    existing = snapshot.rules
    result = existing

    def put(index: Optional[int], rule: RecurrenceRule) -> None:
        nonlocal result
        if result is existing:
            result = list(existing)
        if index is None:
            result.append(rule)
        else:
            result[index] = rule

    by_action: dict[str, list[int]] = {}
    for index, rule in enumerate(existing):
        if rule is not None and rule.action_id:
            by_action.setdefault(rule.action_id, []).append(index)

    for action in actions:
        indexes = by_action.get(action.id, [])
        by_source: dict[str, int] = {}
        for index in indexes:
            key = existing[index].source_key or build_source_key(existing[index])
            by_source.setdefault(key, index)

        desired_keys = set()
        for desired in build_rules_from_action(action, config):
            desired_keys.add(desired.source_key)
            index = by_source.get(desired.source_key)
            if index is None:
                put(None, replace(desired, created_at=now, updated_at=now))
                logger.debug("Created rule %s for action %s", desired.id, action.id)
                continue
            current = existing[index]
            merged = replace(
                desired,
                id=current.id,
                created_at=current.created_at or now,
                updated_at=current.updated_at,
            )
            if merged != current:
                put(index, replace(merged, updated_at=now))

        for index in indexes:
            current = existing[index]
            key = current.source_key or build_source_key(current)
            if key in desired_keys or not current.is_active:
                continue
            put(index, replace(current, source_key=key, is_active=False, updated_at=now))
            logger.debug("Deactivated rule %s for action %s", current.id, action.id)

    if result is existing:
        return snapshot
    return replace(snapshot, rules=result)
