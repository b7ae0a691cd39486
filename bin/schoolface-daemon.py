#!/usr/bin/env python3
"""Headless school-day clock face: polls the API and logs each rendered frame."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal

from schoolface.api import SchoolApiClient
from schoolface.config import FaceConfig
from schoolface.engine import WatchFaceEngine
from schoolface.render import Bounds, DrawPlan
from schoolface.token_channel import MqttTokenChannel

LOGGER = logging.getLogger("schoolface-daemon")


def _describe(plan: DrawPlan) -> str:
    parts = [plan.center_text.text]
    if plan.day_ring:
        parts.append(f"day={plan.day_ring.sweep_angle / 3.6:.0f}%")
    if plan.class_ring:
        parts.append(f"class={plan.class_ring.sweep_angle / 3.6:.0f}%")
    parts.extend(label.text for label in plan.labels)
    parts.extend(line.text for line in plan.lunch_lines)
    return " | ".join(parts)


class HeadlessDisplay:
    """Coalesces redraw requests into at most one render per loop iteration."""

    def __init__(self, bounds: Bounds) -> None:
        self.bounds = bounds
        self.engine: WatchFaceEngine | None = None
        self._pending = False
        self._last = ""

    def invalidate(self) -> None:
        if self._pending:
            return
        self._pending = True
        asyncio.get_running_loop().call_soon(self._draw)

    def _draw(self) -> None:
        self._pending = False
        if self.engine is None:
            return
        summary = _describe(self.engine.render(self.bounds))
        # Only log when the frame content changes; the tick redraws every second.
        if summary != self._last:
            LOGGER.info("Frame: %s", summary)
            self._last = summary


async def _ambient_minute_ticks(engine: WatchFaceEngine, stop_event: asyncio.Event) -> None:
    """Stand in for the platform's once-a-minute ambient tick."""
    while not stop_event.is_set():
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=60)
        except TimeoutError:
            if engine.state.ambient:
                engine.time_tick()


async def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--width", type=int, default=390)
    parser.add_argument("--height", type=int, default=390)
    parser.add_argument("--round", action="store_true", help="Use round-display text sizes")
    parser.add_argument("--ambient", action="store_true", help="Start in ambient mode")
    args = parser.parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    config = FaceConfig.from_env()
    bounds = Bounds(max(1, args.width), max(1, args.height))
    display = HeadlessDisplay(bounds)
    api_client = SchoolApiClient(config.api)
    engine = WatchFaceEngine(
        config,
        provider=api_client,
        token_source=MqttTokenChannel(config.mqtt),
        on_invalidate=display.invalidate,
    )
    display.engine = engine

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _handle_signal(signum: int) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    engine.bounds_changed(bounds, args.round)
    await engine.activate()
    engine.enter_ambient(args.ambient)
    engine.visibility_changed(True)
    minute_ticks = asyncio.create_task(_ambient_minute_ticks(engine, stop_event))
    try:
        await stop_event.wait()
    finally:
        minute_ticks.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await minute_ticks
        engine.visibility_changed(False)
        await engine.deactivate()
        await api_client.close()


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())
