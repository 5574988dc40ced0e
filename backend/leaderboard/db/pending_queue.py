"""Durable ordered queue of score writes made while offline."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel

from leaderboard.exceptions import SourceError
from leaderboard.scoring.models import PlayerHoleScore
from shared.db.connection import to_db_timestamp

if TYPE_CHECKING:
    from shared.db.connection import Database

logger = structlog.get_logger()


class PendingWrite(BaseModel, frozen=True):
    seq: int
    submission_id: str
    queued_at: datetime
    row: PlayerHoleScore


class PendingWriteQueue:
    """FIFO of unsent score rows kept in the ``pending_score_writes`` table.

    Entries survive restarts and are removed one at a time, only after the
    caller confirms the write reached the score store.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def enqueue(self, row: PlayerHoleScore) -> bool:
        """Append a row. Returns False when its submission id is already queued."""
        if row.id is None:
            raise ValueError("queued score rows need a submission id")
        async with self._lock:
            try:
                cursor = self._db.connection.execute(
                    "INSERT OR IGNORE INTO pending_score_writes (submission_id, queued_at, data) VALUES (?, ?, ?)",
                    (row.id, to_db_timestamp(datetime.now(UTC)), row.model_dump_json()),
                )
                self._db.connection.commit()
            except sqlite3.Error as exc:
                self._db.connection.rollback()
                raise SourceError("enqueue_pending_write", str(exc)) from exc
        if cursor.rowcount == 0:
            logger.debug("submission already queued", submission_id=row.id)
            return False
        logger.info("score write queued while offline", submission_id=row.id, event_id=row.event_id)
        return True

    async def pending(self) -> list[PendingWrite]:
        """Queued writes, oldest first."""
        try:
            rows = self._db.connection.execute(
                "SELECT seq, submission_id, queued_at, data FROM pending_score_writes ORDER BY seq",
            ).fetchall()
        except sqlite3.Error as exc:
            raise SourceError("read_pending_writes", str(exc)) from exc
        return [
            PendingWrite(
                seq=seq,
                submission_id=submission_id,
                queued_at=datetime.fromisoformat(queued_at),
                row=PlayerHoleScore.model_validate_json(data),
            )
            for seq, submission_id, queued_at, data in rows
        ]

    async def acknowledge(self, submission_id: str) -> None:
        """Drop an entry once its write has been stored."""
        async with self._lock:
            try:
                self._db.connection.execute(
                    "DELETE FROM pending_score_writes WHERE submission_id = ?",
                    (submission_id,),
                )
                self._db.connection.commit()
            except sqlite3.Error as exc:
                self._db.connection.rollback()
                raise SourceError("acknowledge_pending_write", str(exc)) from exc

    async def size(self) -> int:
        try:
            (count,) = self._db.connection.execute("SELECT COUNT(*) FROM pending_score_writes").fetchone()
        except sqlite3.Error as exc:
            raise SourceError("count_pending_writes", str(exc)) from exc
        return count
