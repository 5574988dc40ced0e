"""Tests for Database connection, schema, and timestamp encoding."""

from __future__ import annotations

import sqlite3
import sys
from datetime import UTC, datetime, timedelta, timezone
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from shared.db.connection import Database, to_db_timestamp

if TYPE_CHECKING:
    from pathlib import Path

EXPECTED_TABLES = {"events", "scorecard", "leaderboard_snapshot", "pending_score_writes"}


def _table_names(db: Database) -> set[str]:
    rows = db.connection.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    return {row[0] for row in rows}


class TestConnect:
    def test_creates_schema_and_connects(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        db.connect()

        assert EXPECTED_TABLES <= _table_names(db)
        assert db.is_connected
        db.close()

    def test_in_memory_database(self) -> None:
        db = Database(":memory:")
        db.connect()

        assert EXPECTED_TABLES <= _table_names(db)
        db.close()

    def test_reconnect_after_close_keeps_data(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        db.connect()
        db.connection.execute(
            "INSERT INTO events (id, created_at, data) VALUES (?, ?, ?)",
            ("e1", "2025-01-01T00:00:00.000000+00:00", "{}"),
        )
        db.connection.commit()
        db.close()
        db.connect()

        (count,) = db.connection.execute("SELECT COUNT(*) FROM events").fetchone()
        assert count == 1
        db.close()

    def test_snapshot_key_is_unique(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        db.connect()
        insert = "INSERT INTO leaderboard_snapshot (id, event_id, time_filter, scores, updated_at) VALUES (?, ?, ?, ?, ?)"
        db.connection.execute(insert, ("s1", "e1", "all_time", "[]", "t"))

        with pytest.raises(sqlite3.IntegrityError, match="UNIQUE"):
            db.connection.execute(insert, ("s2", "e1", "all_time", "[]", "t"))
        db.close()

    def test_connection_raises_when_disconnected(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")

        assert not db.is_connected
        with pytest.raises(RuntimeError, match="not connected"):
            _ = db.connection

    def test_connection_raises_after_close(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        db.connect()
        db.close()

        with pytest.raises(RuntimeError, match="not connected"):
            _ = db.connection

    def test_close_is_idempotent(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        db.connect()
        db.close()
        db.close()

        assert not db.is_connected

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "nested" / "dir" / "test.db")
        db.connect()

        assert (tmp_path / "nested" / "dir" / "test.db").exists()
        db.close()


class TestToDbTimestamp:
    def test_utc_datetime(self) -> None:
        value = datetime(2025, 6, 1, 12, 30, tzinfo=UTC)

        assert to_db_timestamp(value) == "2025-06-01T12:30:00.000000+00:00"

    def test_naive_datetime_is_treated_as_utc(self) -> None:
        assert to_db_timestamp(datetime(2025, 6, 1, 12, 30)) == "2025-06-01T12:30:00.000000+00:00"

    def test_other_timezone_is_converted(self) -> None:
        value = datetime(2025, 6, 1, 14, 30, tzinfo=timezone(timedelta(hours=2)))

        assert to_db_timestamp(value) == "2025-06-01T12:30:00.000000+00:00"

    def test_string_order_matches_time_order(self) -> None:
        utc_value = datetime(2025, 6, 1, 9, 0, 0, 5, tzinfo=UTC)
        offset_value = datetime(2025, 6, 1, 10, 0, tzinfo=timezone(timedelta(hours=1)))  # 09:00 UTC, 5us earlier

        assert to_db_timestamp(offset_value) < to_db_timestamp(utc_value)


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions only")
class TestPermissions:
    def test_db_file_has_restricted_permissions(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        db = Database(db_path)
        db.connect()

        assert db_path.stat().st_mode & 0o777 == 0o600
        db.close()

    def test_harden_permissions_warns_on_failure(self, tmp_path: Path) -> None:
        """Permission hardening logs a warning on failure instead of raising."""
        db = Database(tmp_path / "test.db")
        with patch("pathlib.Path.chmod", side_effect=OSError("permission denied")):
            db.connect()

        assert db.connection is not None
        db.close()
