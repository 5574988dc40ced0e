"""SQLite database connection and schema management."""

import os
import sqlite3
from datetime import UTC, datetime
from pathlib import Path

import structlog

logger = structlog.get_logger()

_DB_FILE_PERMISSIONS = 0o600

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS events (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    data TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS scorecard (
    id TEXT PRIMARY KEY,
    event_id TEXT NOT NULL,
    player_id TEXT NOT NULL,
    hole_number INTEGER,
    published INTEGER NOT NULL DEFAULT 0,
    created_at TEXT,
    data TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_scorecard_event_created
    ON scorecard (event_id, created_at);

CREATE TABLE IF NOT EXISTS leaderboard_snapshot (
    id TEXT PRIMARY KEY,
    event_id TEXT NOT NULL,
    time_filter TEXT NOT NULL,
    scores TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_snapshot_event_filter
    ON leaderboard_snapshot (event_id, time_filter);

CREATE TABLE IF NOT EXISTS pending_score_writes (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    submission_id TEXT NOT NULL UNIQUE,
    queued_at TEXT NOT NULL,
    data TEXT NOT NULL
);
"""


def to_db_timestamp(value: datetime) -> str:
    """Render a timestamp in the fixed-width UTC form stored in TEXT columns.

    Naive datetimes are taken as UTC. A single format keeps string comparison
    in SQL (``created_at >= ?``) equivalent to chronological comparison.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


class Database:
    """SQLite database wrapper that owns the connection and the schema."""

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the active connection or raise if disconnected."""
        if self._conn is None:
            raise RuntimeError("Database is not connected")
        return self._conn

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def connect(self) -> None:
        """Open the database, apply pragmas, create schema, and harden file permissions."""
        if self._path != ":memory:":
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.executescript(_SCHEMA_SQL)

        self._harden_permissions()
        logger.debug("database connected", path=self._path)

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _harden_permissions(self) -> None:
        """Restrict the database file and its WAL/SHM siblings to the owner (best effort)."""
        if os.name != "posix" or self._path == ":memory:":  # pragma: no cover
            return
        for suffix in ("", "-wal", "-shm"):
            p = Path(self._path + suffix)
            if p.exists():
                try:
                    p.chmod(_DB_FILE_PERMISSIONS)
                except OSError:
                    logger.warning("could not set file permissions", permissions=oct(_DB_FILE_PERMISSIONS), path=str(p))
