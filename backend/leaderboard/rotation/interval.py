"""
Elapsed-time interval timer that fires a rotation callback.

The timer never decrements a counter. Every tick recomputes the remaining
time from the clock and the last reset point ("origin"), so late or skipped
ticks (a throttled loop, a slow callback) cannot make the countdown drift.

When the interval has elapsed and the timer is neither paused nor already
rotating, the rotation callback runs in its own task. ``transitioning`` is
set before the callback starts and cleared once it finishes, which is also
when the origin is reset. Ticks keep updating the countdown meanwhile.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Awaitable, Callable

import structlog

from leaderboard.rotation.types import DEFAULT_TICK_MS, RotationState

logger = structlog.get_logger()

RotateCallback = Callable[[], Awaitable[None]]
TickCallback = Callable[[RotationState], None]
MonotonicClock = Callable[[], float]


class IntervalRotation:
    def __init__(
        self,
        interval_ms: int,
        on_rotate: RotateCallback,
        *,
        on_tick: TickCallback | None = None,
        tick_ms: int = DEFAULT_TICK_MS,
        clock: MonotonicClock = time.monotonic,
    ) -> None:
        if interval_ms < 1:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        if tick_ms < 1:
            raise ValueError(f"tick_ms must be positive, got {tick_ms}")
        self._interval_ms = interval_ms
        self._on_rotate = on_rotate
        self._on_tick = on_tick
        self._tick_ms = tick_ms
        self._clock = clock
        self._origin = clock()
        self._paused = False
        self._transitioning = False
        self._time_remaining_seconds = math.ceil(interval_ms / 1000)
        self._tick_task: asyncio.Task[None] | None = None
        self._rotation_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> RotationState:
        return RotationState(
            paused=self._paused,
            time_remaining_seconds=self._time_remaining_seconds,
            interval_ms=self._interval_ms,
            transitioning=self._transitioning,
        )

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def running(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def transitioning(self) -> bool:
        return self._transitioning

    @property
    def elapsed_ms(self) -> float:
        return (self._clock() - self._origin) * 1000

    @property
    def time_until_rotation_ms(self) -> int:
        return max(0, math.ceil(self._interval_ms - self.elapsed_ms))

    def start(self) -> None:
        """Start ticking from a fresh origin. No-op when already running."""
        if self.running:
            return
        self._reset_origin()
        self._tick_task = asyncio.create_task(self._tick_loop())

    def stop(self) -> None:
        """Stop ticking and cancel an in-flight rotation."""
        if self._tick_task is not None and not self._tick_task.done():
            self._tick_task.cancel()
        self._tick_task = None
        if self._rotation_task is not None and not self._rotation_task.done():
            self._rotation_task.cancel()
        self._rotation_task = None
        self._transitioning = False

    def reset(self) -> None:
        """Restart the countdown from the full interval."""
        self._reset_origin()
        self._notify()

    def pause(self) -> None:
        self._paused = True
        self._notify()

    def resume(self) -> None:
        """Unpause and honor the full interval from now on."""
        self._paused = False
        self.reset()

    def set_interval(self, interval_ms: int) -> None:
        """Change the interval. A stopped timer that is not paused starts again."""
        if interval_ms < 1:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self._interval_ms = interval_ms
        self._time_remaining_seconds = self._remaining_seconds()
        self._notify()
        if not self.running and not self._paused:
            self.start()

    def tick(self) -> None:
        """Recompute the countdown and start a rotation when one is due."""
        if not self._paused:
            self._time_remaining_seconds = self._remaining_seconds()
            if self.elapsed_ms >= self._interval_ms and not self._transitioning:
                self._transitioning = True
                self._rotation_task = asyncio.create_task(self._run_rotation())
        self._notify()

    async def rotate_now(self) -> bool:
        """Rotate immediately. Returns False when a rotation is already in flight."""
        if self._transitioning:
            return False
        self._transitioning = True
        await self._run_rotation()
        return True

    async def wait_for_rotation(self) -> None:
        """Wait for the in-flight rotation, if any, to finish."""
        task = self._rotation_task
        if task is not None and not task.done():
            await asyncio.wait({task})

    async def _tick_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._tick_ms / 1000)
                self.tick()
        except asyncio.CancelledError:
            pass

    async def _run_rotation(self) -> None:
        self._notify()
        try:
            await self._on_rotate()
        except Exception:
            logger.exception("rotation callback failed")
        finally:
            self._transitioning = False
            self._reset_origin()
            self._notify()

    def _reset_origin(self) -> None:
        self._origin = self._clock()
        self._time_remaining_seconds = self._remaining_seconds()

    def _remaining_seconds(self) -> int:
        return max(0, math.ceil((self._interval_ms - self.elapsed_ms) / 1000))

    def _notify(self) -> None:
        if self._on_tick is None:
            return
        try:
            self._on_tick(self.state)
        except Exception:
            logger.exception("rotation tick listener failed")
