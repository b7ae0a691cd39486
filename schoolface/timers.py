"""
Self-rescheduling asyncio timers for polling and redraws

Each :class:`RepeatingTimer` runs as a single asyncio task: fire, ask for the
next delay, sleep, repeat. Returning ``None`` from the delay function stops the
timer, so "should this keep running" is re-evaluated on every firing.

:class:`RefreshScheduler` owns the three timers the face needs:
- schedule poll: hourly, only re-armed while a bearer token is held
- lunch poll: every six hours, unconditionally
- tick: redraw aligned to wall-clock second boundaries while visible and interactive

All timers of one engine activation share a :class:`LivenessToken`. Revoking it
makes any queued firing a no-op even if cancellation has not landed yet.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from .config import FaceConfig

LOGGER = logging.getLogger("schoolface.timers")

FireCallback = Callable[[], None]
DelayCallback = Callable[[], float | None]


class LivenessToken:
    """Flag shared by everything scheduled on behalf of one engine activation."""

    __slots__ = ("_alive",)

    def __init__(self) -> None:
        self._alive = True

    @property
    def alive(self) -> bool:
        return self._alive

    def revoke(self) -> None:
        self._alive = False


def delay_to_next_boundary(now_ms: int, interval_ms: int) -> int:
    """Milliseconds until the next multiple of ``interval_ms``.

    Always in ``1..interval_ms``; a call landing exactly on a boundary waits a
    full interval.
    """
    if interval_ms <= 0:
        raise ValueError("Interval must be positive")
    return interval_ms - (now_ms % interval_ms)


class RepeatingTimer:
    def __init__(
        self,
        name: str,
        callback: FireCallback,
        next_delay: DelayCallback,
        liveness: LivenessToken,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.name = name
        self._callback = callback
        self._next_delay = next_delay
        self._liveness = liveness
        self._logger = logger or LOGGER
        self._task: asyncio.Task | None = None
        self.fire_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, delay: float = 0.0) -> None:
        """(Re)start the timer; the first firing happens after ``delay`` seconds."""
        self.cancel()
        if not self._liveness.alive:
            self._logger.debug("Not starting %s timer for a torn-down engine", self.name)
            return
        self._task = asyncio.create_task(self._run(max(0.0, delay)), name=f"schoolface-{self.name}")

    def cancel(self) -> None:
        task = self._task
        self._task = None
        if task and not task.done():
            task.cancel()

    async def _run(self, delay: float) -> None:
        try:
            while True:
                if delay > 0:
                    await asyncio.sleep(delay)
                if not self._liveness.alive:
                    return
                self.fire_count += 1
                try:
                    self._callback()
                except Exception:  # pylint: disable=broad-except
                    self._logger.exception("%s timer callback failed", self.name)
                if not self._liveness.alive:
                    return
                next_delay = self._next_delay()
                if next_delay is None:
                    self._logger.debug("%s timer not re-armed", self.name)
                    return
                delay = next_delay
        finally:
            if self._task is asyncio.current_task():
                self._task = None


class RefreshScheduler:
    def __init__(
        self,
        config: FaceConfig,
        liveness: LivenessToken,
        *,
        on_schedule_poll: FireCallback,
        on_lunch_poll: FireCallback,
        on_tick: FireCallback,
        has_token: Callable[[], bool],
        tick_should_run: Callable[[], bool],
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._has_token = has_token
        self._tick_should_run = tick_should_run
        self._clock = clock
        self._logger = logger or LOGGER
        self.schedule = RepeatingTimer(
            "schedule-poll", on_schedule_poll, self._next_schedule_delay, liveness, logger=self._logger
        )
        self.lunch = RepeatingTimer("lunch-poll", on_lunch_poll, self._next_lunch_delay, liveness, logger=self._logger)
        self.tick = RepeatingTimer("tick", on_tick, self._next_tick_delay, liveness, logger=self._logger)

    def start(self) -> None:
        self.schedule.start()
        self.lunch.start()
        self.update_tick()

    def kick_schedule(self) -> None:
        """Poll the schedule now and restart its hourly cadence."""
        self.schedule.start()

    def update_tick(self) -> None:
        """Start or stop the tick timer to match visibility and ambient state."""
        self.tick.cancel()
        if self._tick_should_run():
            self.tick.start()

    def cancel_all(self) -> None:
        self.schedule.cancel()
        self.lunch.cancel()
        self.tick.cancel()

    def _next_schedule_delay(self) -> float | None:
        if not self._has_token():
            return None
        return self._config.schedule_interval

    def _next_lunch_delay(self) -> float | None:
        return self._config.lunch_interval

    def _next_tick_delay(self) -> float | None:
        if not self._tick_should_run():
            return None
        now_ms = int(self._clock() * 1000)
        return delay_to_next_boundary(now_ms, self._config.tick_interval_ms) / 1000
