"""
Record player score submissions, queueing them while the store is unreachable.

A submission carries its own id, which becomes the score row id. Storing the
same submission twice is a no-op at the repository, so a queued write that
was actually delivered before a crash is safe to flush again.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field

from leaderboard.exceptions import SourceError
from leaderboard.scoring.models import PlayerHoleScore
from leaderboard.snapshots.auto_refresh import ScoreChangeRefresher
from leaderboard.snapshots.store import Clock, utc_now

if TYPE_CHECKING:
    from leaderboard.dal.event_repository import EventRepository
    from leaderboard.dal.score_repository import ScoreRepository
    from leaderboard.db.pending_queue import PendingWriteQueue
    from leaderboard.snapshots.store import SnapshotRefresher

logger = structlog.get_logger()


def _new_submission_id() -> str:
    return str(uuid.uuid4())


class ScoreSubmission(BaseModel, frozen=True):
    submission_id: str = Field(default_factory=_new_submission_id, min_length=1)
    event_id: str = Field(min_length=1)
    player_id: str = Field(min_length=1)
    name: str = "Unknown Player"
    hole_number: int = Field(ge=1)
    score: int | None = Field(default=None, ge=1)
    published: bool = False
    created_at: datetime | None = None

    def to_row(self, now: datetime) -> PlayerHoleScore:
        created_at = self.created_at or now
        return PlayerHoleScore(
            id=self.submission_id,
            event_id=self.event_id,
            player_id=self.player_id,
            name=self.name,
            hole_number=self.hole_number,
            score=self.score,
            published=self.published,
            created_at=created_at,
            updated_at=created_at,
        )


class ScoreRecorder:
    def __init__(
        self,
        scores: ScoreRepository,
        refresher: SnapshotRefresher,
        events: EventRepository,
        queue: PendingWriteQueue,
        *,
        clock: Clock = utc_now,
        online: bool = True,
    ) -> None:
        self._scores = scores
        self._queue = queue
        self._clock = clock
        self._online = online
        self._refreshes = ScoreChangeRefresher(refresher, events)
        self._flush_lock = asyncio.Lock()

    @property
    def online(self) -> bool:
        return self._online

    async def set_online(self, online: bool) -> int:
        """Switch connectivity. Going online flushes the queue and returns the number written."""
        was_online = self._online
        self._online = online
        logger.info("score recorder connectivity changed", online=online)
        if online and not was_online:
            return await self.flush_pending()
        return 0

    async def record(self, submission: ScoreSubmission) -> PlayerHoleScore | None:
        """Store a submission and refresh the event's snapshots in the background.

        Returns the stored row, or None when the write was queued instead
        (offline, or the store failed).
        """
        row = submission.to_row(self._clock())
        if not self._online:
            await self._queue.enqueue(row)
            return None

        try:
            stored = await self._scores.add_score(row)
        except SourceError as exc:
            logger.warning("score write failed, queueing", submission_id=row.id, error=str(exc))
            await self._queue.enqueue(row)
            return None

        await self._refreshes.refresh_event(row.event_id)
        return stored

    async def flush_pending(self) -> int:
        """Write queued submissions in order. Stops at the first failure; the rest stay queued."""
        async with self._flush_lock:
            written = 0
            touched: dict[str, None] = {}
            for entry in await self._queue.pending():
                try:
                    await self._scores.add_score(entry.row)
                except SourceError as exc:
                    logger.warning(
                        "flush stopped, will retry",
                        submission_id=entry.submission_id,
                        error=str(exc),
                    )
                    break
                await self._queue.acknowledge(entry.submission_id)
                written += 1
                touched[entry.row.event_id] = None

            for event_id in touched:
                await self._refreshes.refresh_event(event_id)
            if written:
                logger.info("flushed queued score writes", count=written)
            return written

    async def pending_count(self) -> int:
        return await self._queue.size()

    async def wait_idle(self) -> None:
        await self._refreshes.wait_idle()

    async def close(self) -> None:
        await self._refreshes.stop()
