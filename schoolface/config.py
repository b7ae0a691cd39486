"""Configuration helpers for the school-day clock face."""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass
from datetime import time
from pathlib import Path

from schoolface.datetime_utils import parse_time_of_day
from schoolface.utils import RGB, parse_bool, parse_color_or_default, parse_float, parse_int, strip_or_none

DEFAULT_API_BASE_URL = "https://api.mymicds.net"
DEFAULT_SCHOOL_END = time(15, 15)
DEFAULT_SCHOOL_START = time(8, 0)
DEFAULT_LATE_START = time(9, 0)
WEDNESDAY = 2
TRUNCATION_WIDTH_RATIO = 0.7


@dataclass(frozen=True)
class ThemeConfig:
    background: RGB
    time_text: RGB
    small_text: RGB
    school_ring: RGB
    tap_indicator: RGB
    ambient_ring: RGB
    ambient_text: RGB


@dataclass(frozen=True)
class ApiConfig:
    base_url: str
    timeout: float


@dataclass(frozen=True)
class MqttConfig:
    host: str | None
    port: int
    username: str | None
    password: str | None
    tls_enabled: bool
    cert: str | None
    key: str | None
    ca_cert: str | None
    topic_base: str
    client_id: str
    discovery_timeout: float
    fetch_timeout: float


@dataclass(frozen=True)
class FaceConfig:
    schedule_interval: float  # seconds
    lunch_interval: float  # seconds
    tick_interval_ms: int
    school_ring_scale: float
    class_ring_scale: float
    tap_indicator_scale: float
    truncation_width_ratio: float
    default_school_end: time
    default_school_start: time
    late_start: time
    late_start_weekday: int
    ring_stroke_width: float
    time_text_size: int
    time_text_size_round: int
    small_text_size: int
    font_path: Path | None
    lunch_max_lines: int
    timezone: str | None
    theme: ThemeConfig
    api: ApiConfig
    mqtt: MqttConfig

    @staticmethod
    def from_env(env: dict[str, str] | None = None) -> FaceConfig:
        source = env if env is not None else os.environ
        hostname = source.get("SCHOOLFACE_HOSTNAME") or socket.gethostname()

        theme = ThemeConfig(
            background=parse_color_or_default(source.get("SCHOOLFACE_COLOR_BACKGROUND"), (0x1A, 0x23, 0x7E)),
            time_text=parse_color_or_default(source.get("SCHOOLFACE_COLOR_TIME"), (0xFF, 0xFF, 0xFF)),
            small_text=parse_color_or_default(source.get("SCHOOLFACE_COLOR_TEXT"), (0xFF, 0xFF, 0xFF)),
            school_ring=parse_color_or_default(source.get("SCHOOLFACE_COLOR_SCHOOL_RING"), (0xFF, 0xC1, 0x07)),
            tap_indicator=parse_color_or_default(source.get("SCHOOLFACE_COLOR_TAP_INDICATOR"), (0x30, 0x3F, 0x9F)),
            ambient_ring=(0xCC, 0xCC, 0xCC),
            ambient_text=(0xFF, 0xFF, 0xFF),
        )

        api = ApiConfig(
            base_url=(source.get("SCHOOLFACE_API_BASE_URL") or DEFAULT_API_BASE_URL).rstrip("/"),
            timeout=max(1.0, parse_float(source.get("SCHOOLFACE_API_TIMEOUT_SECONDS"), 15.0)),
        )

        topic_base = source.get("SCHOOLFACE_TOPIC_BASE") or "schoolface"
        mqtt = MqttConfig(
            host=strip_or_none(source.get("MQTT_HOST")),
            port=parse_int(source.get("MQTT_PORT"), 1883),
            username=strip_or_none(source.get("MQTT_USER") or source.get("MQTT_USERNAME")),
            password=strip_or_none(source.get("MQTT_PASS") or source.get("MQTT_PASSWORD")),
            tls_enabled=parse_bool(source.get("MQTT_TLS_ENABLED"), False),
            cert=strip_or_none(source.get("MQTT_CERT")),
            key=strip_or_none(source.get("MQTT_KEY")),
            ca_cert=strip_or_none(source.get("MQTT_CA_CERT")),
            topic_base=topic_base.rstrip("/"),
            client_id=f"schoolface-{hostname}",
            discovery_timeout=max(0.1, parse_float(source.get("SCHOOLFACE_DISCOVERY_TIMEOUT_SECONDS"), 3.0)),
            fetch_timeout=max(0.1, parse_float(source.get("SCHOOLFACE_FETCH_TIMEOUT_SECONDS"), 5.0)),
        )

        font_path = None
        if path := source.get("SCHOOLFACE_FONT_PATH"):
            candidate = Path(path)
            if candidate.is_file():
                font_path = candidate

        return FaceConfig(
            schedule_interval=max(1.0, parse_float(source.get("SCHOOLFACE_SCHEDULE_INTERVAL_SECONDS"), 60 * 60)),
            lunch_interval=max(1.0, parse_float(source.get("SCHOOLFACE_LUNCH_INTERVAL_SECONDS"), 6 * 60 * 60)),
            tick_interval_ms=max(1, parse_int(source.get("SCHOOLFACE_TICK_INTERVAL_MS"), 1000)),
            school_ring_scale=_scale(source.get("SCHOOLFACE_SCHOOL_RING_SCALE"), 0.975),
            class_ring_scale=_scale(source.get("SCHOOLFACE_CLASS_RING_SCALE"), 0.935),
            tap_indicator_scale=_scale(source.get("SCHOOLFACE_TAP_INDICATOR_SCALE"), 0.5),
            truncation_width_ratio=TRUNCATION_WIDTH_RATIO,
            default_school_end=parse_time_of_day(source.get("SCHOOLFACE_DEFAULT_SCHOOL_END")) or DEFAULT_SCHOOL_END,
            default_school_start=(
                parse_time_of_day(source.get("SCHOOLFACE_DEFAULT_SCHOOL_START")) or DEFAULT_SCHOOL_START
            ),
            late_start=parse_time_of_day(source.get("SCHOOLFACE_LATE_START")) or DEFAULT_LATE_START,
            late_start_weekday=parse_int(source.get("SCHOOLFACE_LATE_START_WEEKDAY"), WEDNESDAY) % 7,
            ring_stroke_width=max(1.0, parse_float(source.get("SCHOOLFACE_RING_STROKE_WIDTH"), 8.0)),
            time_text_size=max(6, parse_int(source.get("SCHOOLFACE_TIME_TEXT_SIZE"), 40)),
            time_text_size_round=max(6, parse_int(source.get("SCHOOLFACE_TIME_TEXT_SIZE_ROUND"), 45)),
            small_text_size=max(6, parse_int(source.get("SCHOOLFACE_SMALL_TEXT_SIZE"), 20)),
            font_path=font_path,
            lunch_max_lines=max(1, parse_int(source.get("SCHOOLFACE_LUNCH_MAX_LINES"), 3)),
            timezone=strip_or_none(source.get("SCHOOLFACE_TIMEZONE")),
            theme=theme,
            api=api,
            mqtt=mqtt,
        )


def _scale(value: str | None, default: float) -> float:
    parsed = parse_float(value, default)
    if not 0.0 < parsed <= 1.0:
        return default
    return parsed
