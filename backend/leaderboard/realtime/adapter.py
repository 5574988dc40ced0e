"""Bridge snapshot change notifications to a per-board update callback."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog

from leaderboard.exceptions import SourceError, SubscriptionError
from leaderboard.realtime.types import SNAPSHOT_TOPIC, ChannelStatus, parse_snapshot_change
from leaderboard.scoring.time_filters import parse_time_filter
from leaderboard.snapshots.validation import Invalid

if TYPE_CHECKING:
    from leaderboard.realtime.feed import ChangeFeed, FeedSubscription
    from leaderboard.scoring.models import PlayerTotalScore
    from leaderboard.snapshots.store import SnapshotStore

logger = structlog.get_logger()

# (scores, error): scores is None when the store has no valid snapshot or on error
UpdateCallback = Callable[["list[PlayerTotalScore] | None", "str | None"], Awaitable[None] | None]


def _message_key(message: Any) -> tuple[Any, Any] | None:  # noqa: ANN401
    """Best-effort (event_id, time_filter) of an unparsed message."""
    if isinstance(message, dict):
        event_id = message.get("event_id")
        time_filter = message.get("time_filter")
    else:
        event_id = getattr(message, "event_id", None)
        time_filter = getattr(message, "time_filter", None)
    if event_id is None and time_filter is None:
        return None
    return event_id, time_filter


class LeaderboardSubscription:
    """Live view of one (event_id, time_filter) snapshot.

    The callback sees the initial fetch first, then every matching change in
    the order the feed delivered it. Nothing is delivered after unsubscribe().
    """

    def __init__(self, event_id: str, time_filter: str, on_update: UpdateCallback) -> None:
        self.event_id = event_id
        self.time_filter = str(parse_time_filter(time_filter))
        self._on_update = on_update
        self._ready = asyncio.Event()
        self._active = True
        self._feed_subscription: FeedSubscription | None = None

    @property
    def active(self) -> bool:
        return self._active

    def matches(self, message: Any) -> bool:  # noqa: ANN401
        """Keep messages for this key. Messages without a readable key are kept and rejected later by the parser."""
        key = _message_key(message)
        return key is None or key == (self.event_id, self.time_filter)

    async def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._ready.set()
        if self._feed_subscription is not None:
            await self._feed_subscription.unsubscribe()
            self._feed_subscription = None
        logger.debug("leaderboard unsubscribed", event_id=self.event_id, time_filter=self.time_filter)

    async def _deliver(self, scores: list[PlayerTotalScore] | None, error: str | None) -> None:
        if not self._active:
            return
        try:
            result = self._on_update(scores, error)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("leaderboard update callback failed", event_id=self.event_id, time_filter=self.time_filter)

    async def _handle_message(self, message: Any) -> None:  # noqa: ANN401
        await self._ready.wait()
        if not self._active:
            return
        parsed = parse_snapshot_change(message)
        if isinstance(parsed, Invalid):
            logger.warning(
                "invalid leaderboard change",
                event_id=self.event_id,
                time_filter=self.time_filter,
                reason=parsed.reason,
            )
            await self._deliver(None, parsed.reason)
            return
        change = parsed.payload
        if (change.event_id, change.time_filter) != (self.event_id, self.time_filter):
            return
        await self._deliver(list(change.scores), None)

    async def _handle_status(self, status: ChannelStatus, detail: str | None) -> None:
        if status != ChannelStatus.CHANNEL_ERROR:
            logger.debug("leaderboard channel status", event_id=self.event_id, status=status)
            return
        await self._ready.wait()
        error = SubscriptionError(detail or "unknown")
        logger.warning(
            "leaderboard channel error",
            event_id=self.event_id,
            time_filter=self.time_filter,
            detail=error.detail,
        )
        await self._deliver(None, str(error))


async def subscribe_to_leaderboard(
    store: SnapshotStore,
    feed: ChangeFeed,
    event_id: str,
    time_filter: str,
    on_update: UpdateCallback,
) -> LeaderboardSubscription:
    """Subscribe to a snapshot and deliver its current value immediately.

    The feed registration happens before the initial fetch so a change written
    in between is not lost; it is held back until the initial value has been
    delivered.
    """
    sub = LeaderboardSubscription(event_id, time_filter, on_update)
    sub._feed_subscription = feed.subscribe(
        SNAPSHOT_TOPIC,
        sub._handle_message,
        predicate=sub.matches,
        on_status=sub._handle_status,
    )

    try:
        initial = await store.fetch(event_id, sub.time_filter)
    except SourceError as exc:
        logger.warning("initial leaderboard fetch failed", event_id=event_id, time_filter=sub.time_filter, error=str(exc))
        await sub._deliver(None, str(exc))
    except BaseException:
        await sub.unsubscribe()
        raise
    else:
        await sub._deliver(initial, None)

    sub._ready.set()
    logger.debug("leaderboard subscribed", event_id=event_id, time_filter=sub.time_filter)
    return sub
