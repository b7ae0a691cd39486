"""Schedule and lunch payload parsing.

Turns the upstream schedule response into a gapless :class:`SchoolDay`, filling
the gaps between back-to-back classes with synthetic ``Break`` intervals, and
extracts today's main dishes from the lunch response.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, time, tzinfo
from typing import Any

from schoolface.datetime_utils import parse_iso_time_of_day
from schoolface.utils import RGB, parse_color

LOGGER = logging.getLogger("schoolface.schedule")

BREAK_NAME = "Break"
BREAK_COLOR: RGB = (0x88, 0x88, 0x88)
LUNCH_UNAVAILABLE = "Lunch Not Available"


class SchedulePayloadError(ValueError):
    """Raised when an upstream payload does not have the expected shape."""


@dataclass(slots=True, frozen=True)
class ClassInterval:
    """One period of the day, real or synthetic."""

    name: str
    start: time
    end: time
    color: RGB

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"Class {self.name!r} ends ({self.end}) before it starts ({self.start})")

    @property
    def is_break(self) -> bool:
        return self.name == BREAK_NAME

    @classmethod
    def from_json(cls, entry: dict[str, Any], tz: tzinfo | None = None) -> ClassInterval:
        """Build from one ``schedule.classes[]`` entry. Raises SchedulePayloadError."""
        try:
            class_obj = entry["class"]
            name = class_obj["name"]
            if not isinstance(name, str):
                raise SchedulePayloadError(f"Class name must be a string, got {type(name).__name__}")
            return cls(
                name=name,
                start=parse_iso_time_of_day(entry["start"], tz),
                end=parse_iso_time_of_day(entry["end"], tz),
                color=parse_color(class_obj["color"]),
            )
        except SchedulePayloadError:
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise SchedulePayloadError(f"Malformed class entry: {exc}") from exc


@dataclass(slots=True, frozen=True)
class SchoolDay:
    classes: tuple[ClassInterval, ...]
    in_session: bool
    effective_end: time

    @classmethod
    def empty(cls, default_end: time) -> SchoolDay:
        return cls(classes=(), in_session=False, effective_end=default_end)

    @property
    def first_start(self) -> time | None:
        return self.classes[0].start if self.classes else None


@dataclass(slots=True, frozen=True)
class LunchMenu:
    dishes: tuple[str, ...]

    @classmethod
    def unavailable(cls) -> LunchMenu:
        return cls(dishes=(LUNCH_UNAVAILABLE,))

    @property
    def available(self) -> bool:
        return self.dishes != (LUNCH_UNAVAILABLE,)


def insert_breaks(classes: Sequence[ClassInterval]) -> list[ClassInterval]:
    """Return ``classes`` with a Break filling every gap between neighbours.

    Nothing is added before the first or after the last class.
    """
    if len(classes) < 2:
        return list(classes)
    result: list[ClassInterval] = []
    for current, following in zip(classes, classes[1:]):
        result.append(current)
        # Overlapping neighbours have no gap to fill.
        if current.end < following.start:
            result.append(ClassInterval(BREAK_NAME, current.end, following.start, BREAK_COLOR))
    result.append(classes[-1])
    return result


def build_school_day(
    classes: Sequence[ClassInterval],
    day: object | None,
    default_end: time,
) -> SchoolDay:
    normalized = insert_breaks(classes)
    effective_end = min(normalized[-1].end, default_end) if normalized else default_end
    return SchoolDay(classes=tuple(normalized), in_session=day is not None, effective_end=effective_end)


def parse_schedule_payload(
    payload: Any,
    default_end: time,
    tz: tzinfo | None = None,
    logger: logging.Logger | None = None,
) -> SchoolDay:
    """Parse a ``/schedule/get`` response.

    Never raises: malformed payloads yield an empty, out-of-session day so the
    render loop keeps running.
    """
    log = logger or LOGGER
    try:
        schedule = payload["schedule"]
        day = schedule.get("day")
        raw_classes = schedule["classes"]
        if not isinstance(raw_classes, list):
            raise SchedulePayloadError("schedule.classes must be a list")
        classes = [ClassInterval.from_json(entry, tz) for entry in raw_classes]
    except (KeyError, TypeError, AttributeError, SchedulePayloadError) as exc:
        log.warning("Discarding malformed schedule payload: %s", exc)
        return SchoolDay.empty(default_end)
    school_day = build_school_day(classes, day, default_end)
    log.debug(
        "Parsed schedule: in_session=%s classes=%d effective_end=%s",
        school_day.in_session,
        len(school_day.classes),
        school_day.effective_end,
    )
    return school_day


def parse_lunch_payload(payload: Any, today: date, logger: logging.Logger | None = None) -> LunchMenu:
    """Extract today's upper school main dishes from a ``/lunch/get`` response."""
    log = logger or LOGGER
    try:
        dishes = payload["lunch"][today.isoformat()]["upperschool"]["categories"]["Main Dish"]
        if not isinstance(dishes, list):
            raise TypeError("Main Dish must be a list")
    except (KeyError, TypeError) as exc:
        log.info("No lunch menu for %s: %s", today.isoformat(), exc)
        return LunchMenu.unavailable()
    names = tuple(str(dish).strip() for dish in dishes if str(dish).strip())
    if not names:
        return LunchMenu.unavailable()
    return LunchMenu(dishes=names)
