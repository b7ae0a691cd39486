"""Completion fractions and class lookup for a school day."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, time

from schoolface.config import FaceConfig
from schoolface.datetime_utils import seconds_of_day
from schoolface.schedule import ClassInterval, SchoolDay
from schoolface.utils import clamp


def percent(now: time, start: time, end: time) -> float:
    """Fraction of ``start..end`` elapsed at ``now``, clamped to [0, 1].

    A zero-length interval counts as already elapsed.
    """
    total = seconds_of_day(end) - seconds_of_day(start)
    if total == 0:
        return 1.0
    elapsed = seconds_of_day(now) - seconds_of_day(start)
    return clamp(elapsed / total, 0.0, 1.0)


def current_class(now: time, classes: Iterable[ClassInterval]) -> ClassInterval | None:
    """First interval containing ``now`` (inclusive on both ends)."""
    for interval in classes:
        if interval.start <= now <= interval.end:
            return interval
    return None


def next_class(now: time, classes: Iterable[ClassInterval]) -> ClassInterval | None:
    """First real class starting after ``now``; breaks are never returned."""
    for interval in classes:
        if interval.start > now and not interval.is_break:
            return interval
    return None


def day_start(today: date, school_day: SchoolDay, config: FaceConfig) -> time:
    """Start of the school day ring: the first class, else the configured default."""
    if school_day.first_start is not None:
        return school_day.first_start
    if today.weekday() == config.late_start_weekday:
        return config.late_start
    return config.default_school_start


def day_percent(now: time, today: date, school_day: SchoolDay, config: FaceConfig) -> float:
    return percent(now, day_start(today, school_day, config), school_day.effective_end)
