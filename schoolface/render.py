"""Draw plan construction for the clock face.

:func:`render` is a pure function of the display state, the school day, the
lunch menu and the current time. It produces a :class:`DrawPlan`, a flat list of
primitives (background, circle, arcs, centered text) that a display driver can
paint with whatever toolkit it has.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Protocol

from PIL import ImageFont

from schoolface.config import FaceConfig
from schoolface.datetime_utils import format_clock_time
from schoolface.progress import current_class, day_percent, next_class, percent
from schoolface.schedule import LunchMenu, SchoolDay
from schoolface.utils import RGB

LOGGER = logging.getLogger("schoolface.render")

BLACK: RGB = (0, 0, 0)
TRUNCATED_NAME_LENGTH = 9
ELLIPSIS = "…"
RING_START_ANGLE = -90.0  # 12 o'clock
NO_SCHOOL_TEXT = "No School"
SCHOOL_LABEL = "School"
LUNCH_HEADING = "Lunch"


@dataclass(slots=True, frozen=True)
class Bounds:
    width: int
    height: int

    @property
    def center_x(self) -> float:
        return self.width / 2

    @property
    def center_y(self) -> float:
        return self.height / 2

    def scaled(self, factor: float) -> Rect:
        """Rectangle of ``factor`` times the size, sharing the same center."""
        half_w = self.width * factor / 2
        half_h = self.height * factor / 2
        return Rect(
            left=self.center_x - half_w,
            top=self.center_y - half_h,
            right=self.center_x + half_w,
            bottom=self.center_y + half_h,
        )


@dataclass(slots=True, frozen=True)
class Rect:
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top


@dataclass(slots=True, frozen=True)
class Circle:
    center_x: float
    center_y: float
    radius: float
    color: RGB


@dataclass(slots=True, frozen=True)
class Arc:
    rect: Rect
    start_angle: float
    sweep_angle: float
    color: RGB
    stroke_width: float
    anti_alias: bool


@dataclass(slots=True, frozen=True)
class TextItem:
    """Horizontally centered text; ``y`` is the baseline."""

    text: str
    x: float
    y: float
    size: int
    color: RGB
    anti_alias: bool


@dataclass(slots=True, frozen=True)
class DrawPlan:
    background: RGB
    tap_indicator: Circle | None
    center_text: TextItem
    lunch_lines: tuple[TextItem, ...]
    day_ring: Arc | None
    class_ring: Arc | None
    labels: tuple[TextItem, ...]


@dataclass(slots=True)
class DisplayState:
    ambient: bool = False
    low_bit_ambient: bool = False
    burn_in_protection: bool = False
    visible: bool = False
    tap_indicator_visible: bool = False
    lunch_view_active: bool = False
    bounds: Bounds = Bounds(0, 0)
    is_round: bool = False

    @property
    def anti_alias(self) -> bool:
        return not (self.low_bit_ambient and self.ambient)


class TextMeasurer(Protocol):
    def width(self, text: str, size: int) -> float: ...

    def height(self, text: str, size: int) -> float: ...


class PillowTextMeasurer:
    """Measure text with Pillow fonts, one cached font per size."""

    def __init__(self, font_path: Path | None = None) -> None:
        self._font_path = font_path
        self._fonts: dict[int, ImageFont.FreeTypeFont | ImageFont.ImageFont] = {}

    def _font(self, size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
        font = self._fonts.get(size)
        if font is None:
            if self._font_path is not None:
                font = ImageFont.truetype(str(self._font_path), size)
            else:
                font = ImageFont.load_default(size=size)
            self._fonts[size] = font
        return font

    def width(self, text: str, size: int) -> float:
        return float(self._font(size).getlength(text))

    def height(self, text: str, size: int) -> float:
        left, top, right, bottom = self._font(size).getbbox(text)
        return float(bottom - top)


def tap_indicator_radius(bounds: Bounds, scale: float) -> float:
    return min(bounds.width, bounds.height) * scale / 2


def within_tap_region(x: float, y: float, bounds: Bounds, scale: float) -> bool:
    radius = tap_indicator_radius(bounds, scale)
    distance_squared = (x - bounds.center_x) ** 2 + (y - bounds.center_y) ** 2
    return distance_squared <= radius**2


def truncate_name(name: str) -> str:
    return f"{name[:TRUNCATED_NAME_LENGTH]}{ELLIPSIS}"


def combine_and_truncate(
    name: str,
    value: str,
    *,
    measurer: TextMeasurer,
    size: int,
    bounds_width: float,
    width_ratio: float,
) -> str:
    """Join ``name: value``, shortening the name when the line is too wide."""
    text = f"{name}: {value}"
    width = measurer.width(text, size)
    if bounds_width <= 0:
        # Geometry not known yet.
        return text
    LOGGER.debug("Width ratio for %r: %.3f", name, width / bounds_width)
    if width >= width_ratio * bounds_width:
        return f"{truncate_name(name)}: {value}"
    return text


def format_percent(fraction: float) -> str:
    return f"{math.floor(fraction * 100 + 0.5)}%"


def render(
    state: DisplayState,
    school_day: SchoolDay,
    lunch: LunchMenu,
    now: datetime,
    config: FaceConfig,
    measurer: TextMeasurer,
) -> DrawPlan:
    theme = config.theme
    bounds = state.bounds
    cx, cy = bounds.center_x, bounds.center_y
    anti_alias = state.anti_alias
    now_time = now.time().replace(microsecond=0, tzinfo=None)
    time_size = config.time_text_size_round if state.is_round else config.time_text_size
    small_size = config.small_text_size

    time_text = format_clock_time(now_time)
    time_height = measurer.height(time_text[:1], time_size)
    small_height = measurer.height("1", small_size)
    text_color = theme.ambient_text if state.ambient else theme.small_text

    background = BLACK if state.ambient else theme.background

    tap_indicator = None
    if state.tap_indicator_visible:
        tap_indicator = Circle(cx, cy, tap_indicator_radius(bounds, config.tap_indicator_scale), theme.tap_indicator)

    lunch_lines: tuple[TextItem, ...] = ()
    if state.lunch_view_active:
        center_text = TextItem(LUNCH_HEADING, cx, cy + time_height / 2, time_size, theme.time_text, anti_alias)
        lunch_lines = _lunch_lines(
            lunch,
            start_y=cy + time_height / 2,
            line_height=small_height * 1.6,
            color=text_color,
            state=state,
            config=config,
            measurer=measurer,
        )
    else:
        center_text = TextItem(time_text, cx, cy + time_height / 2, time_size, theme.time_text, anti_alias)

    day_fraction = day_percent(now_time, now.date(), school_day, config)
    day_ring = None
    if school_day.in_session:
        day_ring = Arc(
            rect=bounds.scaled(config.school_ring_scale),
            start_angle=RING_START_ANGLE,
            sweep_angle=360 * day_fraction,
            color=theme.ambient_ring if state.ambient else theme.school_ring,
            stroke_width=config.ring_stroke_width,
            anti_alias=anti_alias,
        )

    label_fraction = day_fraction
    label_name = SCHOOL_LABEL
    class_ring = None
    active = current_class(now_time, school_day.classes)
    if active is not None:
        label_fraction = percent(now_time, active.start, active.end)
        label_name = active.name
        class_ring = Arc(
            rect=bounds.scaled(config.class_ring_scale),
            start_angle=RING_START_ANGLE,
            sweep_angle=360 * label_fraction,
            color=theme.ambient_ring if state.ambient else active.color,
            stroke_width=config.ring_stroke_width,
            anti_alias=anti_alias,
        )

    labels: list[TextItem] = []
    if not state.ambient and not state.lunch_view_active:
        if school_day.in_session:
            percent_text = combine_and_truncate(
                label_name,
                format_percent(label_fraction),
                measurer=measurer,
                size=small_size,
                bounds_width=bounds.width,
                width_ratio=config.truncation_width_ratio,
            )
        else:
            percent_text = NO_SCHOOL_TEXT
        labels.append(TextItem(percent_text, cx, cy - time_height, small_size, text_color, anti_alias))

        upcoming = next_class(now_time, school_day.classes)
        if upcoming is not None:
            next_text = combine_and_truncate(
                upcoming.name,
                format_clock_time(upcoming.start),
                measurer=measurer,
                size=small_size,
                bounds_width=bounds.width,
                width_ratio=config.truncation_width_ratio,
            )
            labels.append(
                TextItem(next_text, cx, cy + time_height + small_height, small_size, text_color, anti_alias)
            )

    return DrawPlan(
        background=background,
        tap_indicator=tap_indicator,
        center_text=center_text,
        lunch_lines=lunch_lines,
        day_ring=day_ring,
        class_ring=class_ring,
        labels=tuple(labels),
    )


def _lunch_lines(
    lunch: LunchMenu,
    *,
    start_y: float,
    line_height: float,
    color: RGB,
    state: DisplayState,
    config: FaceConfig,
    measurer: TextMeasurer,
) -> tuple[TextItem, ...]:
    dishes = list(lunch.dishes)
    if len(dishes) > config.lunch_max_lines:
        shown = config.lunch_max_lines - 1
        dishes = dishes[:shown] + [f"+{len(lunch.dishes) - shown} more"]
    size = config.small_text_size
    limit = config.truncation_width_ratio * state.bounds.width
    lines: list[TextItem] = []
    for index, dish in enumerate(dishes):
        text = truncate_name(dish) if 0 < limit <= measurer.width(dish, size) else dish
        y = start_y + line_height * (index + 1)
        lines.append(TextItem(text, state.bounds.center_x, y, size, color, state.anti_alias))
    return tuple(lines)
