"""SQLite-backed event metadata repository."""

from __future__ import annotations

import asyncio
import sqlite3
from typing import TYPE_CHECKING

from leaderboard.dal.event_repository import EventRepository
from leaderboard.dal.models import EventInfo
from leaderboard.exceptions import SourceError
from shared.db.connection import to_db_timestamp

if TYPE_CHECKING:
    from shared.db.connection import Database


class SqliteEventRepository(EventRepository):
    """SQLite implementation of EventRepository.

    Events are owned by the surrounding application; ``save_event`` exists
    for seeding and tests.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def save_event(self, event: EventInfo) -> None:
        """Insert or replace an event record."""
        async with self._lock:
            try:
                self._db.connection.execute(
                    "INSERT OR REPLACE INTO events (id, created_at, data) VALUES (?, ?, ?)",
                    (event.id, to_db_timestamp(event.created_at), event.model_dump_json()),
                )
                self._db.connection.commit()
            except sqlite3.Error as exc:
                self._db.connection.rollback()
                raise SourceError("save_event", str(exc)) from exc

    async def get_event(self, event_id: str) -> EventInfo | None:
        try:
            row = self._db.connection.execute("SELECT data FROM events WHERE id = ?", (event_id,)).fetchone()
        except sqlite3.Error as exc:
            raise SourceError("get_event", str(exc)) from exc
        if row is None:
            return None
        return EventInfo.model_validate_json(row[0])

    async def list_events(self) -> list[EventInfo]:
        """All events, newest first."""
        try:
            rows = self._db.connection.execute("SELECT data FROM events ORDER BY created_at DESC").fetchall()
        except sqlite3.Error as exc:
            raise SourceError("list_events", str(exc)) from exc
        return [EventInfo.model_validate_json(row[0]) for row in rows]
