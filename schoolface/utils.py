"""
Shared utility functions for parsing and data manipulation

Provides common helpers for:
- String parsing: Environment variable conversion (parse_bool, parse_int, parse_float)
- Color parsing: Hex strings to RGB tuples
- Numeric helpers: Clamping

These utilities are used throughout schoolface for configuration parsing and payload handling.
"""

from __future__ import annotations

from PIL import ImageColor

RGB = tuple[int, int, int]


def strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def parse_bool(value: str | None, default: bool = False) -> bool:
    """Interpret env-style booleans."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_int(value: str | None, default: int) -> int:
    """Best-effort int parser with fallback."""
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_float(value: str | None, default: float) -> float:
    """Best-effort float parser with fallback."""
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_color(value: str) -> RGB:
    """Parse a ``#RRGGBB`` (or any Pillow color spec) into an RGB tuple.

    Raises:
        ValueError: If the value is not a recognizable color.
    """
    if not isinstance(value, str):
        raise ValueError(f"Color must be a string, got {type(value).__name__}")
    rgb = ImageColor.getrgb(value.strip())
    return rgb[0], rgb[1], rgb[2]


def parse_color_or_default(value: str | None, default: RGB) -> RGB:
    """Best-effort color parser with fallback."""
    if not value:
        return default
    try:
        return parse_color(value)
    except ValueError:
        return default


def clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))
