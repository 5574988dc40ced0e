"""Recompute snapshots in the background when raw score rows change."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from leaderboard.exceptions import SourceError
from leaderboard.realtime.types import SCORE_TOPIC, parse_score_change
from leaderboard.snapshots.validation import Invalid

if TYPE_CHECKING:
    from leaderboard.dal.event_repository import EventRepository
    from leaderboard.realtime.feed import ChangeFeed, FeedSubscription
    from leaderboard.snapshots.store import SnapshotRefresher

logger = structlog.get_logger()


class ScoreChangeRefresher:
    """Listen on the ``scorecard`` topic and refresh every filter of the affected event.

    At most one refresh per (event_id, time_filter) runs at a time. Requests
    arriving while one is running collapse into a single follow-up run, so a
    burst of submissions costs at most two recomputations per key.
    """

    def __init__(
        self,
        refresher: SnapshotRefresher,
        events: EventRepository,
        feed: ChangeFeed | None = None,
    ) -> None:
        self._refresher = refresher
        self._events = events
        self._feed = feed
        self._subscription: FeedSubscription | None = None
        self._running: dict[tuple[str, str], asyncio.Task[None]] = {}
        self._dirty: set[tuple[str, str]] = set()

    @property
    def started(self) -> bool:
        return self._subscription is not None

    def start(self) -> None:
        """Start listening for score changes. Needs a feed."""
        if self._feed is None:
            raise RuntimeError("ScoreChangeRefresher was created without a feed")
        if self._subscription is None:
            self._subscription = self._feed.subscribe(SCORE_TOPIC, self._on_score_change)

    async def stop(self) -> None:
        """Unsubscribe and cancel in-flight refreshes."""
        if self._subscription is not None:
            await self._subscription.unsubscribe()
            self._subscription = None
        tasks = list(self._running.values())
        self._running.clear()
        self._dirty.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)

    async def wait_idle(self) -> None:
        """Wait until no refresh is running or scheduled."""
        while self._running:
            await asyncio.gather(*self._running.values(), return_exceptions=True)

    def request(self, event_id: str, time_filter: str) -> None:
        """Schedule a refresh, coalescing with one already in flight for the same key."""
        key = (event_id, str(time_filter))
        if key in self._running:
            self._dirty.add(key)
            return
        self._running[key] = asyncio.create_task(self._run(key), name=f"refresh-{key[0]}-{key[1]}")

    async def refresh_event(self, event_id: str) -> None:
        """Schedule a refresh of every time filter configured for the event."""
        try:
            event = await self._events.get_event(event_id)
        except SourceError as exc:
            logger.warning("cannot load event for refresh", event_id=event_id, error=str(exc))
            return
        if event is None:
            logger.warning("score change for unknown event", event_id=event_id)
            return
        for time_filter in event.time_filters:
            self.request(event_id, time_filter)

    async def _on_score_change(self, message: Any) -> None:  # noqa: ANN401
        parsed = parse_score_change(message)
        if isinstance(parsed, Invalid):
            logger.warning("ignoring malformed score change", reason=parsed.reason)
            return
        await self.refresh_event(parsed.payload.event_id)

    async def _run(self, key: tuple[str, str]) -> None:
        event_id, time_filter = key
        try:
            while True:
                self._dirty.discard(key)
                result = await self._refresher.refresh(event_id, time_filter)
                if not result.success:
                    logger.warning("background refresh failed", event_id=event_id, time_filter=time_filter, error=result.error)
                if key not in self._dirty:
                    break
        except Exception:
            logger.exception("background refresh crashed", event_id=event_id, time_filter=time_filter)
        finally:
            if self._running.get(key) is asyncio.current_task():
                del self._running[key]
