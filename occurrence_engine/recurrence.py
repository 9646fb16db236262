"""Recurrence descriptors shared by the legacy and rule-driven planners.

A descriptor answers two questions for the materializer: on which dates
does the action occur, and which slots should be placed on each of them.
Legacy action records and first-class recurrence rules both reduce to a
``RecurrenceDescriptor``; the ``source`` tag tells them apart where the
slot resolution differs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Union

from occurrence_engine.config import DEFAULT_CONFIG, EngineConfig
from occurrence_engine.schema import (
    ANYTIME,
    FIXED,
    ONE_OFF,
    RULE_ONE_TIME,
    TIME_FIXED,
    TIME_MODES,
    TIME_NONE,
    TIME_SLOTS,
    TIME_WINDOW,
    WINDOW,
    Action,
    RecurrenceRule,
)
from occurrence_engine.timeutil import coerce_duration, iso_weekday, normalize_time, parse_time, time_from_stamp

ALL_WEEKDAYS = (1, 2, 3, 4, 5, 6, 7)


@dataclass(frozen=True)
class SlotSpec:
    """One slot to place on a candidate date.

    ``start`` is None for untimed and window slots. ``exact`` marks a time the
    user picked explicitly, which is never shifted.
    """

    start: Optional[str]
    duration: int
    end: Optional[str] = None
    time_type: Optional[str] = None
    window_start: Optional[str] = None
    window_end: Optional[str] = None
    exact: bool = False


@dataclass(frozen=True)
class LegacySource:
    action: Action


@dataclass(frozen=True)
class RuleSource:
    rule: RecurrenceRule


@dataclass(frozen=True)
class RecurrenceDescriptor:
    """When and how an action repeats."""

    action_id: str
    source: Union[LegacySource, RuleSource]
    time_policy: str
    duration: int
    one_off_date: Optional[date] = None
    weekdays: tuple[int, ...] = ()
    active_from: Optional[date] = None
    active_to: Optional[date] = None


def clean_weekdays(values: Iterable) -> tuple[int, ...]:
    out: list[int] = []
    for value in values or ():
        try:
            day = int(value)
        except (TypeError, ValueError):
            continue
        if day in ALL_WEEKDAYS and day not in out:
            out.append(day)
    return tuple(sorted(out))


def _clean_slots(values: Iterable) -> list[str]:
    out: list[str] = []
    for value in values or ():
        slot = normalize_time(value)
        if slot and slot not in out:
            out.append(slot)
    return out


def weekly_table(action: Action) -> dict[int, list[tuple[str, Optional[str]]]]:
    table: dict[int, list[tuple[str, Optional[str]]]] = {}
    for raw_day, slots in (action.weekly_slots or {}).items():
        days = clean_weekdays([raw_day])
        if not days:
            continue
        clean = []
        for slot in slots or ():
            start = normalize_time(getattr(slot, "start", None))
            if not start:
                continue
            entry = (start, normalize_time(getattr(slot, "end", None)))
            if entry not in clean:
                clean.append(entry)
        if clean:
            table[days[0]] = clean
    return table


def action_slots(action: Action) -> list[str]:
    return _clean_slots(action.time_slots)


def schedule_slots(action: Action) -> list[str]:
    return _clean_slots(action.schedule.time_slots) if action.schedule else []


def base_duration(action: Action, config: EngineConfig) -> int:
    return (
        coerce_duration(action.duration_minutes)
        or coerce_duration(action.schedule.duration_minutes if action.schedule else None)
        or config.default_duration_minutes
    )


def infer_time_mode(action: Action) -> str:
    mode = action.time_mode.strip().upper() if isinstance(action.time_mode, str) else ""
    if mode in TIME_MODES:
        return mode
    slots = action_slots(action) or schedule_slots(action)
    if len(slots) > 1:
        return TIME_SLOTS
    if slots or normalize_time(action.start_time) or time_from_stamp(action.start_at):
        return TIME_FIXED
    if normalize_time(action.window_start) or normalize_time(action.window_end):
        return TIME_WINDOW
    return TIME_NONE


def resolve_weekdays(action: Action) -> tuple[int, ...]:
    days = clean_weekdays(action.days_of_week)
    if not days and action.schedule:
        days = clean_weekdays(action.schedule.days_of_week)
    if not days and isinstance(action.repeat, str) and action.repeat.strip().lower() == "daily":
        days = ALL_WEEKDAYS
    table = weekly_table(action)
    if table:
        # Per-weekday slot tables only produce dates that have slots defined.
        days = tuple(day for day in sorted(table) if not days or day in days)
    return days


def describe_action(action: Action, config: EngineConfig = DEFAULT_CONFIG) -> Optional[RecurrenceDescriptor]:
    """Describe a legacy action; None when it is not yet schedulable."""

    if action is None or not action.id:
        return None

    source = LegacySource(action)
    time_policy = infer_time_mode(action)
    duration = base_duration(action, config)

    if action.kind == ONE_OFF:
        if action.one_off_date is None:
            return None
        return RecurrenceDescriptor(
            action_id=action.id,
            source=source,
            time_policy=time_policy,
            duration=duration,
            one_off_date=action.one_off_date,
            active_from=action.one_off_date,
            active_to=action.one_off_date,
        )

    weekdays = resolve_weekdays(action)
    if not weekdays:
        return None
    if action.kind == ANYTIME:
        time_policy = TIME_NONE
    return RecurrenceDescriptor(
        action_id=action.id,
        source=source,
        time_policy=time_policy,
        duration=duration,
        weekdays=weekdays,
        active_from=action.active_from,
        active_to=action.active_to,
    )


def rule_duration(rule: RecurrenceRule) -> Optional[int]:
    duration = coerce_duration(rule.duration_minutes)
    if duration is not None:
        return duration
    start = parse_time(rule.start_time)
    end = parse_time(rule.end_time)
    if start is not None and end is not None and end > start:
        return end - start
    return None


def describe_rule(rule: RecurrenceRule, config: EngineConfig = DEFAULT_CONFIG) -> Optional[RecurrenceDescriptor]:
    """Describe an active recurrence rule; None when it cannot produce rows."""

    if rule is None or not rule.id or not rule.action_id or not rule.is_active:
        return None
    time_policy = TIME_WINDOW if rule.time_type == WINDOW else TIME_FIXED
    if time_policy == TIME_FIXED and not normalize_time(rule.start_time):
        return None
    duration = rule_duration(rule) or config.default_duration_minutes
    source = RuleSource(rule)

    if rule.kind == RULE_ONE_TIME:
        if rule.start_date is None:
            return None
        return RecurrenceDescriptor(
            action_id=rule.action_id,
            source=source,
            time_policy=time_policy,
            duration=duration,
            one_off_date=rule.start_date,
        )

    weekdays = clean_weekdays(rule.days_of_week)
    if not weekdays:
        return None
    return RecurrenceDescriptor(
        action_id=rule.action_id,
        source=source,
        time_policy=time_policy,
        duration=duration,
        weekdays=weekdays,
        active_from=rule.start_date,
        active_to=rule.end_date,
    )


def within_period(descriptor: RecurrenceDescriptor, day: date) -> bool:
    if descriptor.active_from is not None and day < descriptor.active_from:
        return False
    if descriptor.active_to is not None and day > descriptor.active_to:
        return False
    return True


def occurs_on(descriptor: RecurrenceDescriptor, day: date) -> bool:
    if not within_period(descriptor, day):
        return False
    if descriptor.one_off_date is not None:
        return day == descriptor.one_off_date
    return iso_weekday(day) in descriptor.weekdays


def candidate_dates(descriptor: RecurrenceDescriptor, dates: Iterable[date]) -> list[date]:
    return [day for day in dates if occurs_on(descriptor, day)]


def slot_duration(start: str, end: Optional[str], fallback: int) -> int:
    start_min = parse_time(start)
    end_min = parse_time(end)
    if start_min is not None and end_min is not None and end_min > start_min:
        return end_min - start_min
    return fallback


def _untimed(duration: int) -> SlotSpec:
    return SlotSpec(start=None, duration=duration)


def _legacy_slots(descriptor: RecurrenceDescriptor, action: Action, day: date, config: EngineConfig) -> list[SlotSpec]:
    duration = descriptor.duration
    table = weekly_table(action)
    if table:
        return [
            SlotSpec(start=start, end=end, duration=slot_duration(start, end, duration), exact=True)
            for start, end in table.get(iso_weekday(day), [])
        ]

    policy = descriptor.time_policy
    if policy == TIME_NONE:
        return [_untimed(duration)]
    if policy == TIME_WINDOW:
        return [
            SlotSpec(
                start=None,
                duration=duration,
                time_type=WINDOW,
                window_start=normalize_time(action.window_start) or config.default_window_start,
                window_end=normalize_time(action.window_end) or config.default_window_end,
            )
        ]

    starts = action_slots(action) or schedule_slots(action)
    direct = normalize_time(action.start_time) or time_from_stamp(action.start_at)
    if policy == TIME_FIXED:
        starts = starts[:1]
    if not starts and direct:
        starts = [direct]
    if not starts:
        starts = [config.default_start]
    return [SlotSpec(start=start, duration=duration) for start in starts]


def _rule_slots(descriptor: RecurrenceDescriptor, rule: RecurrenceRule, config: EngineConfig) -> list[SlotSpec]:
    if descriptor.time_policy == TIME_WINDOW:
        return [
            SlotSpec(
                start=None,
                duration=descriptor.duration,
                time_type=WINDOW,
                window_start=normalize_time(rule.window_start) or config.default_window_start,
                window_end=normalize_time(rule.window_end) or config.default_window_end,
            )
        ]
    return [
        SlotSpec(
            start=normalize_time(rule.start_time),
            end=normalize_time(rule.end_time),
            duration=descriptor.duration,
            time_type=FIXED,
            exact=True,
        )
    ]


def slots_for_date(
    descriptor: RecurrenceDescriptor, day: date, config: EngineConfig = DEFAULT_CONFIG
) -> list[SlotSpec]:
    """Slots to place on ``day``, in priority order of the time sources."""

    if isinstance(descriptor.source, RuleSource):
        return _rule_slots(descriptor, descriptor.source.rule, config)
    return _legacy_slots(descriptor, descriptor.source.action, day, config)
