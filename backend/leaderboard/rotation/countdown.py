"""Visible rotation countdown for displays that only cycle pages.

A thin owner around IntervalRotation: it keeps the current RotationState
and notifies listeners whenever it changes.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable

import structlog

from leaderboard.rotation.interval import IntervalRotation, MonotonicClock, RotateCallback
from leaderboard.rotation.types import DEFAULT_ROTATION_INTERVAL_MS, DEFAULT_TICK_MS, RotationState

logger = structlog.get_logger()

StateListener = Callable[[RotationState], None]


class RotationCountdown:
    def __init__(self, *, tick_ms: int = DEFAULT_TICK_MS, clock: MonotonicClock = time.monotonic) -> None:
        self._tick_ms = tick_ms
        self._clock = clock
        self._timer: IntervalRotation | None = None
        self._state = RotationState(
            interval_ms=DEFAULT_ROTATION_INTERVAL_MS,
            time_remaining_seconds=math.ceil(DEFAULT_ROTATION_INTERVAL_MS / 1000),
        )
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> RotationState:
        return self._state

    @property
    def progress(self) -> float:
        """Share of the interval already elapsed, 0 to 100."""
        total_seconds = self._state.interval_ms / 1000
        if total_seconds <= 0:
            return 0.0
        elapsed = total_seconds - self._state.time_remaining_seconds
        return min(100.0, max(0.0, elapsed / total_seconds * 100))

    @property
    def active(self) -> bool:
        return self._timer is not None

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def initialize(self, interval_ms: int, on_rotate: RotateCallback) -> None:
        """Start counting down from the full interval, replacing any previous timer."""
        self.cleanup()
        self._timer = IntervalRotation(
            interval_ms,
            on_rotate,
            on_tick=self._set_state,
            tick_ms=self._tick_ms,
            clock=self._clock,
        )
        self._set_state(self._timer.state)
        self._timer.start()
        logger.debug("rotation countdown started", interval_ms=interval_ms)

    def pause(self) -> None:
        if self._timer is not None:
            self._timer.pause()

    def resume(self) -> None:
        if self._timer is not None:
            self._timer.resume()

    def toggle_pause(self) -> None:
        if self._state.paused:
            self.resume()
        else:
            self.pause()

    async def rotate_now(self) -> bool:
        """Rotate immediately unless a rotation is already running."""
        if self._timer is None:
            return False
        return await self._timer.rotate_now()

    def set_interval(self, interval_ms: int) -> None:
        if self._timer is None:
            if interval_ms < 1:
                raise ValueError(f"interval_ms must be positive, got {interval_ms}")
            self._set_state(
                self._state.model_copy(
                    update={"interval_ms": interval_ms, "time_remaining_seconds": math.ceil(interval_ms / 1000)},
                ),
            )
            return
        self._timer.set_interval(interval_ms)

    def cleanup(self) -> None:
        """Stop the timer. The last state stays readable."""
        if self._timer is not None:
            self._timer.stop()
            self._timer = None
            self._set_state(self._state.model_copy(update={"transitioning": False}))

    def tick(self) -> None:
        """Run one tick immediately (the background loop does this every tick_ms)."""
        if self._timer is not None:
            self._timer.tick()

    async def wait_for_rotation(self) -> None:
        if self._timer is not None:
            await self._timer.wait_for_rotation()

    def _set_state(self, state: RotationState) -> None:
        if state == self._state:
            return
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("countdown listener failed")
