"""
In-process change feed with topic-based subscriptions.

Stands in for a database's realtime channel: repositories publish a message
after each committed write and subscribers receive it on their own consumer
task. Each subscription has a FIFO queue, so one slow handler never delays
another and messages for a single subscriber are delivered in publish order.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from itertools import count
from typing import Any

import structlog

from leaderboard.realtime.types import ChannelStatus

logger = structlog.get_logger()

MessageHandler = Callable[[Any], Awaitable[None]]
StatusHandler = Callable[[ChannelStatus, str | None], Awaitable[None]]
Predicate = Callable[[Any], bool]

_STOP = object()
_subscription_ids = count(1)


class FeedSubscription:
    """Handle for one registered handler. Created by ChangeFeed.subscribe."""

    def __init__(
        self,
        feed: ChangeFeed,
        topic: str,
        handler: MessageHandler,
        predicate: Predicate | None,
        on_status: StatusHandler | None,
    ) -> None:
        self.id = next(_subscription_ids)
        self.topic = topic
        self._feed = feed
        self._handler = handler
        self._predicate = predicate
        self._on_status = on_status
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._active = True
        self._task = asyncio.create_task(self._consume(), name=f"feed-{topic}-{self.id}")

    @property
    def active(self) -> bool:
        return self._active

    def _offer(self, item: Any) -> bool:  # noqa: ANN401
        if not self._active:
            return False
        self._queue.put_nowait(item)
        return True

    async def unsubscribe(self) -> None:
        """Stop delivery. Safe to call repeatedly and from inside the handler."""
        if not self._active:
            return
        self._active = False
        self._feed._discard(self)
        self._queue.put_nowait(_STOP)
        if self._task is asyncio.current_task():
            return
        self._task.cancel()
        await asyncio.wait({self._task})

    async def _close(self) -> None:
        """Drain queued items, deliver CLOSED to the status handler, then stop."""
        if not self._active:
            return
        self._queue.put_nowait(("status", ChannelStatus.CLOSED, None))
        self._queue.put_nowait(_STOP)
        if self._task is not asyncio.current_task():
            await asyncio.wait({self._task})
        self._active = False

    async def _consume(self) -> None:
        while True:
            item = await self._queue.get()
            if item is _STOP:
                return
            kind, *rest = item
            if not self._active:
                continue
            if kind == "status":
                await self._dispatch_status(*rest)
            else:
                await self._dispatch_message(rest[0])

    async def _dispatch_message(self, message: Any) -> None:  # noqa: ANN401
        try:
            if self._predicate is not None and not self._predicate(message):
                return
            await self._handler(message)
        except Exception:
            logger.exception("feed handler failed", topic=self.topic, subscription_id=self.id)

    async def _dispatch_status(self, status: ChannelStatus, detail: str | None) -> None:
        if self._on_status is None:
            return
        try:
            await self._on_status(status, detail)
        except Exception:
            logger.exception("feed status handler failed", topic=self.topic, status=status)


class ChangeFeed:
    """Topic -> subscribers fan-out. Must be used from within a running event loop."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, dict[int, FeedSubscription]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscriptions.get(topic, {}))

    def subscribe(
        self,
        topic: str,
        handler: MessageHandler,
        *,
        predicate: Predicate | None = None,
        on_status: StatusHandler | None = None,
    ) -> FeedSubscription:
        """Register a handler for a topic.

        The status handler receives SUBSCRIBED first, then CHANNEL_ERROR for
        every reported error and CLOSED when the feed shuts down.
        """
        if self._closed:
            raise RuntimeError("ChangeFeed is closed")
        sub = FeedSubscription(self, topic, handler, predicate, on_status)
        self._subscriptions.setdefault(topic, {})[sub.id] = sub
        sub._offer(("status", ChannelStatus.SUBSCRIBED, None))
        logger.debug("feed subscription added", topic=topic, subscription_id=sub.id)
        return sub

    def publish(self, topic: str, message: Any) -> int:  # noqa: ANN401
        """Queue a message for every subscriber of the topic. Returns the number queued."""
        if self._closed:
            return 0
        # snapshot: a handler may unsubscribe while we iterate
        return sum(sub._offer(("message", message)) for sub in list(self._subscriptions.get(topic, {}).values()))

    def report_error(self, topic: str, detail: str) -> None:
        """Signal a channel-level failure to every subscriber of the topic."""
        logger.warning("feed channel error", topic=topic, detail=detail)
        for sub in list(self._subscriptions.get(topic, {}).values()):
            sub._offer(("status", ChannelStatus.CHANNEL_ERROR, detail))

    async def close(self) -> None:
        """Notify subscribers with CLOSED and wait for their consumers to finish."""
        if self._closed:
            return
        self._closed = True
        subs = [sub for topic_subs in self._subscriptions.values() for sub in topic_subs.values()]
        self._subscriptions.clear()
        for sub in subs:
            await sub._close()

    def _discard(self, sub: FeedSubscription) -> None:
        topic_subs = self._subscriptions.get(sub.topic)
        if topic_subs is not None:
            topic_subs.pop(sub.id, None)
            if not topic_subs:
                del self._subscriptions[sub.topic]
