"""
Clock face engine: lifecycle state machine and data ownership

The engine owns everything the face renders from (token, school day, lunch menu,
display state) and routes lifecycle signals to the timers and the renderer:

- activate / deactivate: create or tear down the refresh timers and token channel
- visibility_changed / enter_ambient: start or stop the second-aligned tick
- properties_changed / bounds_changed: display capabilities and geometry
- tap: tap indicator and lunch view toggling
- render: build a DrawPlan for the current instant

Everything runs on one asyncio loop. Network work runs in tracked tasks; results
are applied only if the activation that issued them is still alive.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any, Literal, Protocol

from .api import SchoolApiAuthError, SchoolApiError
from .config import FaceConfig
from .datetime_utils import local_now, resolve_timezone
from .render import Bounds, DisplayState, DrawPlan, PillowTextMeasurer, TextMeasurer, render, within_tap_region
from .schedule import LunchMenu, SchoolDay, parse_lunch_payload, parse_schedule_payload
from .timers import LivenessToken, RefreshScheduler
from .token_channel import TokenSource, acquire_token

LOGGER = logging.getLogger("schoolface.engine")

TapKind = Literal["touch", "tap", "touch_cancel"]
TAP_TOUCH: TapKind = "touch"
TAP_TAP: TapKind = "tap"
TAP_TOUCH_CANCEL: TapKind = "touch_cancel"

InvalidateCallback = Callable[[], None]


class DataProvider(Protocol):
    async def fetch_schedule(self, token: str) -> dict[str, Any]: ...

    async def fetch_lunch(self) -> dict[str, Any]: ...


class WatchFaceEngine:
    def __init__(
        self,
        config: FaceConfig,
        *,
        provider: DataProvider,
        token_source: TokenSource | None = None,
        measurer: TextMeasurer | None = None,
        on_invalidate: InvalidateCallback | None = None,
        clock: Callable[[], float] = time.time,
        now_fn: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self._provider = provider
        self._token_source = token_source
        self._measurer = measurer or PillowTextMeasurer(config.font_path)
        self._on_invalidate = on_invalidate
        self._clock = clock
        self._tz = resolve_timezone(config.timezone)
        self._now_fn = now_fn or functools.partial(local_now, self._tz)
        self._logger = logger or LOGGER

        self.state = DisplayState()
        self.token: str | None = None
        self.school_day = SchoolDay.empty(config.default_school_end)
        self.lunch = LunchMenu.unavailable()
        self.scheduler: RefreshScheduler | None = None
        self.redraw_requests = 0
        self._liveness: LivenessToken | None = None
        self._tasks: set[asyncio.Task] = set()
        self._lifecycle_lock = asyncio.Lock()

    @property
    def active(self) -> bool:
        return self._liveness is not None and self._liveness.alive

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def activate(self) -> None:
        # Waits for an in-progress deactivate so the old teardown cannot close the new channel.
        async with self._lifecycle_lock:
            if self.active:
                return
            self._activate()

    def _activate(self) -> None:
        liveness = LivenessToken()
        self._liveness = liveness
        self.scheduler = RefreshScheduler(
            self.config,
            liveness,
            on_schedule_poll=functools.partial(self._poll_schedule, liveness),
            on_lunch_poll=functools.partial(self._poll_lunch, liveness),
            on_tick=functools.partial(self._on_tick, liveness),
            has_token=lambda: self.token is not None,
            tick_should_run=self._tick_should_run,
            clock=self._clock,
            logger=self._logger,
        )
        self.scheduler.start()
        if self._token_source is not None:
            self._track(asyncio.create_task(self._start_token_channel(liveness)))
        self._logger.info("Clock face engine activated")

    async def deactivate(self) -> None:
        async with self._lifecycle_lock:
            await self._deactivate()

    async def _deactivate(self) -> None:
        liveness = self._liveness
        if liveness is None:
            return
        liveness.revoke()
        self._liveness = None
        if self.scheduler:
            self.scheduler.cancel_all()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.difference_update(tasks)
        if self._token_source is not None:
            try:
                await self._token_source.close()
            except Exception:  # pylint: disable=broad-except
                self._logger.exception("Failed to close companion token channel")
        self._logger.info("Clock face engine deactivated")

    def visibility_changed(self, visible: bool) -> None:
        self.state.visible = visible
        if visible:
            self.invalidate()
        self._update_tick()

    def enter_ambient(self, ambient: bool) -> None:
        self.state.ambient = ambient
        self._logger.debug("Ambient mode %s", "on" if ambient else "off")
        self._update_tick()
        self.invalidate()

    def properties_changed(self, low_bit_ambient: bool, burn_in_protection: bool) -> None:
        self.state.low_bit_ambient = low_bit_ambient
        self.state.burn_in_protection = burn_in_protection

    def bounds_changed(self, bounds: Bounds, is_round: bool) -> None:
        self.state.bounds = bounds
        self.state.is_round = is_round
        self.invalidate()

    def tap(self, x: float, y: float, kind: TapKind) -> None:
        inside = within_tap_region(x, y, self.state.bounds, self.config.tap_indicator_scale)
        if kind == TAP_TAP:
            self.state.tap_indicator_visible = False
            if inside:
                self.state.lunch_view_active = not self.state.lunch_view_active
        elif kind == TAP_TOUCH:
            if inside:
                self.state.tap_indicator_visible = True
        elif kind == TAP_TOUCH_CANCEL:
            self.state.tap_indicator_visible = False
        else:
            self._logger.debug("Ignoring unknown tap kind %r", kind)
            return
        self.invalidate()

    def time_tick(self) -> None:
        """Per-minute tick delivered by the platform in ambient mode."""
        self.invalidate()

    def timezone_changed(self) -> None:
        self.invalidate()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, bounds: Bounds | None = None, now: datetime | None = None) -> DrawPlan:
        if bounds is not None:
            self.state.bounds = bounds
        return render(
            self.state,
            self.school_day,
            self.lunch,
            now or self._now_fn(),
            self.config,
            self._measurer,
        )

    def invalidate(self) -> None:
        self.redraw_requests += 1
        if self._on_invalidate is None:
            return
        try:
            self._on_invalidate()
        except Exception:  # pylint: disable=broad-except
            self._logger.exception("Redraw callback failed")

    # ------------------------------------------------------------------
    # Token handling
    # ------------------------------------------------------------------

    def install_token(self, token: str) -> None:
        """Store a bearer token and poll the schedule with it right away."""
        self.token = token
        self._logger.info("Bearer token received from companion")
        if self.active and self.scheduler:
            self.scheduler.kick_schedule()

    async def _start_token_channel(self, liveness: LivenessToken) -> None:
        source = self._token_source
        if source is None:
            return
        try:
            await source.connect()
            if not liveness.alive:
                return
            if not source.is_open():
                self._logger.debug("Companion token channel not connected; running without a token")
                return
            source.subscribe(functools.partial(self._on_token_pushed, liveness))
        except RuntimeError as exc:
            self._logger.warning("Companion token updates unavailable: %s", exc)
        except Exception:  # pylint: disable=broad-except
            self._logger.exception("Failed to open companion token channel")
            return
        try:
            token = await acquire_token(source, self._logger)
        except Exception:  # pylint: disable=broad-except
            self._logger.exception("Companion token lookup failed")
            return
        if token is not None and liveness.alive:
            self.install_token(token)

    def _on_token_pushed(self, liveness: LivenessToken, token: str) -> None:
        if not liveness.alive:
            self._logger.debug("Ignoring token update for a torn-down engine")
            return
        self.install_token(token)

    # ------------------------------------------------------------------
    # Timer callbacks
    # ------------------------------------------------------------------

    def _tick_should_run(self) -> bool:
        return self.active and self.state.visible and not self.state.ambient

    def _update_tick(self) -> None:
        if self.scheduler and self.active:
            self.scheduler.update_tick()

    def _on_tick(self, liveness: LivenessToken) -> None:
        if liveness.alive:
            self.invalidate()

    def _poll_schedule(self, liveness: LivenessToken) -> None:
        if not liveness.alive:
            return
        token = self.token
        if token is None:
            self._logger.debug("No bearer token yet; skipping schedule poll")
            return
        self._track(asyncio.create_task(self._fetch_schedule(token, liveness)))

    def _poll_lunch(self, liveness: LivenessToken) -> None:
        if not liveness.alive:
            return
        self._track(asyncio.create_task(self._fetch_lunch(liveness)))

    async def _fetch_schedule(self, token: str, liveness: LivenessToken) -> None:
        self._logger.debug("Making schedule request")
        try:
            payload = await self._provider.fetch_schedule(token)
        except SchoolApiAuthError as exc:
            self._logger.warning("Schedule request unauthorized: %s", exc)
            return
        except SchoolApiError as exc:
            self._logger.warning("Schedule request failed: %s", exc)
            return
        except Exception:  # pylint: disable=broad-except
            self._logger.exception("Schedule request failed unexpectedly")
            return
        if not liveness.alive:
            self._logger.debug("Dropping schedule response for a torn-down engine")
            return
        self.school_day = parse_schedule_payload(
            payload, self.config.default_school_end, self._tz, logger=self._logger
        )
        self._logger.info(
            "Schedule updated: school today=%s, %d interval(s)",
            self.school_day.in_session,
            len(self.school_day.classes),
        )
        self.invalidate()

    async def _fetch_lunch(self, liveness: LivenessToken) -> None:
        self._logger.debug("Making lunch request")
        try:
            payload = await self._provider.fetch_lunch()
        except SchoolApiError as exc:
            self._logger.warning("Lunch request failed: %s", exc)
            return
        except Exception:  # pylint: disable=broad-except
            self._logger.exception("Lunch request failed unexpectedly")
            return
        if not liveness.alive:
            self._logger.debug("Dropping lunch response for a torn-down engine")
            return
        self.lunch = parse_lunch_payload(payload, self._now_fn().date(), logger=self._logger)
        self.invalidate()

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)

        def _cleanup(_task: asyncio.Task) -> None:
            self._tasks.discard(_task)

        task.add_done_callback(_cleanup)
