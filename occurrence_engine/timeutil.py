"""Clock and calendar primitives."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Optional

_TIME_RE = re.compile(r"^(\d{2}):(\d{2})$")
_STAMP_TIME_RE = re.compile(r"T(\d{2}:\d{2})")

MINUTES_PER_DAY = 24 * 60


def parse_time(value) -> Optional[int]:
    """Return minutes since midnight for an ``HH:MM`` string, else None."""

    if not isinstance(value, str):
        return None
    match = _TIME_RE.match(value.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return hour * 60 + minute


def format_time(minutes) -> Optional[str]:
    """Format minutes since midnight as ``HH:MM``; None when out of range."""

    if not isinstance(minutes, int) or isinstance(minutes, bool):
        return None
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        return None
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time(value) -> Optional[str]:
    return format_time(parse_time(value))


def time_from_stamp(value) -> Optional[str]:
    """Extract the clock part of a local ``YYYY-MM-DDTHH:MM`` stamp."""

    if not isinstance(value, str):
        return None
    match = _STAMP_TIME_RE.search(value)
    return normalize_time(match.group(1)) if match else None


def coerce_date(value) -> Optional[date]:
    """Accept a date, datetime or ISO date string; None when unusable."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def coerce_duration(value) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    rounded = int(round(value))
    return rounded if rounded > 0 else None


def add_minutes(clock: str, minutes: int) -> Optional[str]:
    """Shift a clock value, staying inside the same day."""

    start = parse_time(clock)
    if start is None:
        return None
    return format_time(start + int(minutes))


def overlaps(start_a: int, duration_a: int, start_b: int, duration_b: int) -> bool:
    """Half-open interval overlap; touching endpoints do not overlap."""

    return start_a < start_b + duration_b and start_b < start_a + duration_a


def iso_weekday(day: date) -> int:
    """1=Mon .. 7=Sun."""
    return day.isoweekday()


def date_range(start: date, end: date) -> list[date]:
    """Inclusive list of dates; empty when end precedes start."""

    if end < start:
        return []
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def build_window_dates(start: date, days: int) -> list[date]:
    count = int(days) if isinstance(days, int) and days > 0 else 0
    return [start + timedelta(days=offset) for offset in range(count)]


def combine(day: date, clock: str) -> Optional[datetime]:
    """Local naive datetime for a date and clock value."""

    minutes = parse_time(clock)
    if minutes is None:
        return None
    return datetime(day.year, day.month, day.day) + timedelta(minutes=minutes)
