"""
Snapshot store: cached, ranked leaderboards keyed by (event_id, time_filter).

``refresh`` is the only write path. It recomputes a snapshot from the raw
score rows of the event, restricted to the filter's cutoff, ranks and
truncates the totals and replaces the stored row in one write. ``fetch``
reads the cached row back and rejects it as a whole when any element does
not have the expected shape.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

import structlog
from pydantic import BaseModel

from leaderboard.exceptions import PayloadValidationError, SourceError
from leaderboard.scoring.aggregate import DEFAULT_TOP_N, rank_rows
from leaderboard.scoring.time_filters import parse_time_filter, resolve_cutoff
from leaderboard.snapshots.validation import Invalid, dump_scores, validate_leaderboard_scores

if TYPE_CHECKING:
    from leaderboard.dal.event_repository import EventRepository
    from leaderboard.dal.score_repository import ScoreRepository
    from leaderboard.dal.snapshot_repository import SnapshotRepository
    from leaderboard.scoring.models import PlayerTotalScore

logger = structlog.get_logger()

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class RefreshResult(BaseModel, frozen=True):
    success: bool
    error: str | None = None
    count: int = 0
    updated_at: datetime | None = None

    @classmethod
    def failed(cls, error: str) -> RefreshResult:
        return cls(success=False, error=error)


class SnapshotRefresher(Protocol):
    """Anything that can recompute and persist one snapshot."""

    async def refresh(self, event_id: str, time_filter: str) -> RefreshResult: ...


class SnapshotStore:
    """In-process snapshot computation and cache access."""

    def __init__(
        self,
        scores: ScoreRepository,
        snapshots: SnapshotRepository,
        events: EventRepository,
        *,
        limit: int = DEFAULT_TOP_N,
        published_only: bool = False,
        clock: Clock = utc_now,
    ) -> None:
        if limit < 1:
            raise ValueError(f"snapshot limit must be positive, got {limit}")
        self._scores = scores
        self._snapshots = snapshots
        self._events = events
        self._limit = limit
        self._published_only = published_only
        self._clock = clock
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    @property
    def limit(self) -> int:
        return self._limit

    async def has_event(self, event_id: str) -> bool:
        return await self._events.get_event(event_id) is not None

    async def fetch(self, event_id: str, time_filter: str) -> list[PlayerTotalScore] | None:
        """Cached scores, or None when nothing valid is stored.

        Unknown filters read the all_time snapshot, the key refresh writes them
        under. Raises SourceError when the snapshot table cannot be read.
        """
        resolved = parse_time_filter(time_filter)
        try:
            stored = await self._snapshots.get(event_id, resolved)
        except PayloadValidationError as exc:
            logger.warning(
                "rejecting unreadable snapshot",
                event_id=event_id,
                time_filter=resolved,
                reason=exc.reason,
            )
            return None
        if stored is None:
            return None
        result = validate_leaderboard_scores(stored.scores)
        if isinstance(result, Invalid):
            logger.warning(
                "rejecting malformed snapshot",
                event_id=event_id,
                time_filter=resolved,
                reason=result.reason,
            )
            return None
        return result.payload

    async def refresh(self, event_id: str, time_filter: str) -> RefreshResult:
        """Recompute and store one snapshot. Source failures come back as a failed result."""
        resolved = parse_time_filter(time_filter)
        async with self._lock_for(event_id, resolved):
            try:
                return await self._refresh_locked(event_id, resolved)
            except SourceError as exc:
                logger.warning("snapshot refresh failed", event_id=event_id, time_filter=resolved, error=str(exc))
                return RefreshResult.failed(str(exc))

    async def _refresh_locked(self, event_id: str, time_filter: str) -> RefreshResult:
        event = await self._events.get_event(event_id)
        if event is None:
            logger.warning("refresh requested for unknown event", event_id=event_id)
            return RefreshResult.failed(f"event {event_id} not found")

        now = self._clock()
        cutoff = resolve_cutoff(time_filter, now)
        rows = await self._scores.get_scores(event_id, cutoff, published_only=self._published_only)
        ranked = rank_rows(rows, event.hole_count, self._limit)

        stored = await self._snapshots.upsert(event_id, time_filter, dump_scores(ranked), now)
        logger.info(
            "snapshot refreshed",
            event_id=event_id,
            time_filter=time_filter,
            rows=len(rows),
            count=len(ranked),
        )
        return RefreshResult(success=True, count=len(ranked), updated_at=stored.updated_at)

    def _lock_for(self, event_id: str, time_filter: str) -> asyncio.Lock:
        key = (event_id, str(time_filter))
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock
