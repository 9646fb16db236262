"""Core data schema for actions, recurrence rules and occurrences."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

ONE_OFF = "ONE_OFF"
RECURRING = "RECURRING"
ANYTIME = "ANYTIME"
ACTION_KINDS = (ONE_OFF, RECURRING, ANYTIME)

TIME_NONE = "NONE"
TIME_FIXED = "FIXED"
TIME_WINDOW = "WINDOW"
TIME_SLOTS = "SLOTS"
TIME_MODES = (TIME_NONE, TIME_FIXED, TIME_WINDOW, TIME_SLOTS)

PLANNED = "planned"
DONE = "done"
SKIPPED = "skipped"
CANCELED = "canceled"
MISSED = "missed"
RESCHEDULED = "rescheduled"
STATUSES = (PLANNED, DONE, SKIPPED, CANCELED, MISSED, RESCHEDULED)
TERMINAL_STATUSES = frozenset({DONE, SKIPPED, CANCELED, MISSED, RESCHEDULED})

FIXED = "fixed"
WINDOW = "window"

RULE_RECURRING = "recurring"
RULE_ONE_TIME = "one_time"

# Uniqueness key used for occurrences without a specific time.
NO_TIME_SLOT = "--:--"


@dataclass(frozen=True)
class SlotRange:
    """One entry of a per-weekday slot table."""

    start: str
    end: Optional[str] = None


@dataclass(frozen=True)
class Schedule:
    """Schedule-level fallbacks shared by legacy action records."""

    days_of_week: tuple[int, ...] = ()
    time_slots: tuple[str, ...] = ()
    duration_minutes: Optional[int] = None


@dataclass(frozen=True)
class Action:
    """A recurring or one-off obligation, owned by the external UI."""

    id: str
    category_id: str = ""
    kind: str = RECURRING
    days_of_week: tuple[int, ...] = ()
    time_mode: Optional[str] = None
    start_time: Optional[str] = None
    time_slots: tuple[str, ...] = ()
    weekly_slots: dict[int, tuple[SlotRange, ...]] = field(default_factory=dict)
    duration_minutes: Optional[int] = None
    one_off_date: Optional[date] = None
    active_from: Optional[date] = None
    active_to: Optional[date] = None
    window_start: Optional[str] = None
    window_end: Optional[str] = None
    start_at: Optional[str] = None
    repeat: Optional[str] = None
    schedule: Optional[Schedule] = None
    title: str = ""


@dataclass(frozen=True)
class RecurrenceRule:
    """First-class description of one repeating pattern of an action."""

    id: str
    action_id: str
    kind: str = RULE_RECURRING
    days_of_week: tuple[int, ...] = ()
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    time_type: str = FIXED
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    window_start: Optional[str] = None
    window_end: Optional[str] = None
    duration_minutes: Optional[int] = None
    source_key: str = ""
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Occurrence:
    """One dated, optionally timed instance of an action."""

    id: str
    action_id: str
    date: date
    start: Optional[str] = None
    slot_key: Optional[str] = None
    duration_minutes: Optional[int] = None
    end: Optional[str] = None
    status: str = PLANNED
    rule_id: Optional[str] = None
    time_type: Optional[str] = None
    window_start: Optional[str] = None
    window_end: Optional[str] = None
    resolved_start: Optional[str] = None
    conflict: bool = False
    points: Optional[float] = None
    priority: Optional[str] = None
    updated_at: Optional[datetime] = None

    @property
    def is_untimed(self) -> bool:
        return self.start is None

    @property
    def has_window_bounds(self) -> bool:
        return bool(self.window_start or self.window_end)


@dataclass(frozen=True)
class Snapshot:
    """State exchanged with the persistence layer."""

    actions: list[Action] = field(default_factory=list)
    rules: list[RecurrenceRule] = field(default_factory=list)
    occurrences: list[Occurrence] = field(default_factory=list)

    def action_by_id(self, action_id: str) -> Optional[Action]:
        for action in self.actions:
            if action.id == action_id:
                return action
        return None
