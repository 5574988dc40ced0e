"""SQLite-backed score row repository."""

from __future__ import annotations

import asyncio
import sqlite3
import uuid
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from leaderboard.dal.score_repository import ScoreRepository
from leaderboard.exceptions import SourceError
from leaderboard.realtime.types import SCORE_TOPIC, ChangeType, ScoreRowChange
from leaderboard.scoring.models import PlayerHoleScore
from shared.db.connection import to_db_timestamp

if TYPE_CHECKING:
    from datetime import datetime

    from leaderboard.realtime.feed import ChangeFeed
    from shared.db.connection import Database

logger = structlog.get_logger()


class SqliteScoreRepository(ScoreRepository):
    """SQLite implementation of ScoreRepository.

    The full row is kept as JSON; event_id, created_at and published are
    duplicated into indexed columns for the window query. When a feed is
    given, every inserted row is announced on the ``scorecard`` topic.
    """

    def __init__(self, db: Database, feed: ChangeFeed | None = None) -> None:
        self._db = db
        self._feed = feed
        self._lock = asyncio.Lock()

    async def get_scores(
        self,
        event_id: str,
        since: datetime | None = None,
        *,
        published_only: bool = False,
    ) -> list[PlayerHoleScore]:
        """Rows ordered by creation time. Rows without created_at never match a cutoff."""
        query = "SELECT data FROM scorecard WHERE event_id = ?"
        params: list[object] = [event_id]
        if since is not None:
            query += " AND created_at >= ?"
            params.append(to_db_timestamp(since))
        if published_only:
            query += " AND published = 1"
        query += " ORDER BY created_at, rowid"

        try:
            rows = self._db.connection.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise SourceError("get_scores", str(exc)) from exc

        scores: list[PlayerHoleScore] = []
        for (data,) in rows:
            try:
                scores.append(PlayerHoleScore.model_validate_json(data))
            except ValidationError as exc:
                logger.warning("skipping unreadable score row", event_id=event_id, errors=exc.error_count())
        return scores

    async def add_score(self, row: PlayerHoleScore) -> PlayerHoleScore:
        """Insert a row, assigning an id when it has none. A known id is a no-op."""
        if not row.event_id:
            raise ValueError("score row needs an event_id to be stored")
        if row.id is None:
            row = row.model_copy(update={"id": str(uuid.uuid4())})

        async with self._lock:
            try:
                cursor = self._db.connection.execute(
                    "INSERT OR IGNORE INTO scorecard "
                    "(id, event_id, player_id, hole_number, published, created_at, data) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        row.id,
                        row.event_id,
                        row.player_id,
                        row.hole_number,
                        int(row.published),
                        to_db_timestamp(row.created_at) if row.created_at else None,
                        row.model_dump_json(),
                    ),
                )
                self._db.connection.commit()
            except sqlite3.Error as exc:
                self._db.connection.rollback()
                raise SourceError("add_score", str(exc)) from exc

        if cursor.rowcount == 0:
            logger.debug("score row already stored, ignoring duplicate", score_id=row.id, event_id=row.event_id)
            return row

        if self._feed is not None:
            change = ScoreRowChange(event_type=ChangeType.INSERT, row=row.model_dump(mode="json"))
            self._feed.publish(SCORE_TOPIC, change.model_dump(by_alias=True))
        return row

    async def count_scores(self, event_id: str) -> int:
        try:
            (count,) = self._db.connection.execute(
                "SELECT COUNT(*) FROM scorecard WHERE event_id = ?",
                (event_id,),
            ).fetchone()
        except sqlite3.Error as exc:
            raise SourceError("count_scores", str(exc)) from exc
        return count
