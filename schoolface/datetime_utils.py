"""Shared datetime parsing and formatting utilities."""

from __future__ import annotations

import re
from datetime import datetime, time, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_TIME_PATTERN = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*(am|pm)?$")


def local_now(tz: tzinfo | None = None) -> datetime:
    """Get current datetime in the given timezone (system local when omitted)."""
    if tz is None:
        return datetime.now().astimezone()
    return datetime.now(tz)


def resolve_timezone(name: str | None) -> tzinfo | None:
    """Look up an IANA timezone name. Returns None (system local) when unknown."""
    if not name:
        return None
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError):
        return None


def parse_iso_time_of_day(value: str, tz: tzinfo | None = None) -> time:
    """Parse an ISO-8601 datetime and reduce it to a local time of day.

    Naive values are taken as already local. Raises ValueError if invalid.
    """
    if not isinstance(value, str):
        raise ValueError(f"Expected ISO-8601 string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(tz) if tz is not None else parsed.astimezone()
    return parsed.time().replace(tzinfo=None)


def parse_time_of_day(value: str | None) -> time | None:
    """Parse ``HH:MM`` (24h) or ``H[:MM]am/pm`` into a time. Returns None if invalid."""
    if not value:
        return None
    cleaned = value.strip().lower()
    match = _TIME_PATTERN.match(cleaned)
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    suffix = match.group(3)
    if suffix:
        if hour == 0 or hour > 12:
            return None
        if hour == 12:
            hour = 0
        if suffix == "pm":
            hour += 12
    if hour >= 24 or minute >= 60:
        return None
    return time(hour, minute)


def seconds_of_day(value: time) -> int:
    """Whole seconds since midnight; sub-second precision is dropped."""
    return value.hour * 3600 + value.minute * 60 + value.second


def format_clock_time(value: time | datetime) -> str:
    """Format as 12-hour ``H:MM`` with no leading zero (e.g. ``9:05``, ``12:30``)."""
    hour = value.hour % 12 or 12
    return f"{hour}:{value.minute:02d}"
