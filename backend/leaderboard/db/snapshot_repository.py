"""SQLite-backed leaderboard snapshot repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog

from leaderboard.dal.models import StoredSnapshot
from leaderboard.dal.snapshot_repository import SnapshotRepository
from leaderboard.exceptions import PayloadValidationError, SourceError
from leaderboard.realtime.types import SNAPSHOT_TOPIC, SnapshotChange
from shared.db.connection import to_db_timestamp

if TYPE_CHECKING:
    from leaderboard.realtime.feed import ChangeFeed
    from shared.db.connection import Database

logger = structlog.get_logger()

_UPSERT_SQL = (
    "INSERT INTO leaderboard_snapshot (id, event_id, time_filter, scores, updated_at) "
    "VALUES (?, ?, ?, ?, ?) "
    "ON CONFLICT (event_id, time_filter) DO UPDATE SET "
    "scores = excluded.scores, updated_at = excluded.updated_at "
    "RETURNING id"
)


def encode_scores(scores: list[dict[str, Any]]) -> str:
    """Canonical JSON for a scores payload: same input, same bytes."""
    return json.dumps(scores, separators=(",", ":"), ensure_ascii=False)


class SqliteSnapshotRepository(SnapshotRepository):
    """SQLite implementation of SnapshotRepository.

    A snapshot is written with a single upsert statement, so a reader sees
    either the old row or the new one. The row id is assigned on first write
    and survives later upserts.
    """

    def __init__(self, db: Database, feed: ChangeFeed | None = None) -> None:
        self._db = db
        self._feed = feed
        self._lock = asyncio.Lock()

    async def get(self, event_id: str, time_filter: str) -> StoredSnapshot | None:
        try:
            row = self._db.connection.execute(
                "SELECT id, scores, updated_at FROM leaderboard_snapshot WHERE event_id = ? AND time_filter = ?",
                (event_id, str(time_filter)),
            ).fetchone()
        except sqlite3.Error as exc:
            raise SourceError("get_snapshot", str(exc)) from exc
        if row is None:
            return None

        snapshot_id, scores_json, updated_at = row
        try:
            scores = json.loads(scores_json)
        except json.JSONDecodeError:
            # left for the caller's shape validation to reject
            logger.warning("snapshot payload is not valid JSON", event_id=event_id, time_filter=time_filter)
            scores = None
        try:
            stored_at = datetime.fromisoformat(updated_at)
        except (TypeError, ValueError) as exc:
            raise PayloadValidationError(f"snapshot updated_at is unreadable: {updated_at!r}") from exc
        return StoredSnapshot(
            id=snapshot_id,
            event_id=event_id,
            time_filter=str(time_filter),
            scores=scores,
            updated_at=stored_at,
        )

    async def upsert(
        self,
        event_id: str,
        time_filter: str,
        scores: list[dict[str, Any]],
        updated_at: datetime,
    ) -> StoredSnapshot:
        time_filter = str(time_filter)
        async with self._lock:
            try:
                rows = self._db.connection.execute(
                    _UPSERT_SQL,
                    (str(uuid.uuid4()), event_id, time_filter, encode_scores(scores), to_db_timestamp(updated_at)),
                ).fetchall()
                self._db.connection.commit()
            except sqlite3.Error as exc:
                self._db.connection.rollback()
                raise SourceError("upsert_snapshot", str(exc)) from exc
        snapshot_id = rows[0][0]

        logger.debug("snapshot stored", event_id=event_id, time_filter=time_filter, count=len(scores))
        if self._feed is not None:
            change = SnapshotChange(event_id=event_id, time_filter=time_filter, scores=scores)
            self._feed.publish(SNAPSHOT_TOPIC, change.model_dump())
        return StoredSnapshot(
            id=snapshot_id,
            event_id=event_id,
            time_filter=time_filter,
            scores=scores,
            updated_at=updated_at,
        )
