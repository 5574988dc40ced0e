"""Shared fixtures for leaderboard tests."""

import os
from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest

from leaderboard.db import (
    PendingWriteQueue,
    SqliteEventRepository,
    SqliteScoreRepository,
    SqliteSnapshotRepository,
)
from leaderboard.realtime.feed import ChangeFeed
from leaderboard.snapshots.store import SnapshotStore
from leaderboard.tests.helpers.builders import FakeClock, FakeMonotonic
from shared.db import Database

# LeaderboardSettings requires at least one API key. Set a test default
# before any settings object is instantiated.
os.environ.setdefault("LEADERBOARD_API_KEYS", "test-key")


@pytest.fixture
def db(tmp_path: Path) -> Generator[Database]:
    database = Database(tmp_path / "leaderboard.db")
    database.connect()
    yield database
    database.close()


@pytest.fixture
async def feed() -> AsyncGenerator[ChangeFeed]:
    change_feed = ChangeFeed()
    yield change_feed
    await change_feed.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def score_repo(db: Database, feed: ChangeFeed) -> SqliteScoreRepository:
    return SqliteScoreRepository(db, feed)


@pytest.fixture
def snapshot_repo(db: Database, feed: ChangeFeed) -> SqliteSnapshotRepository:
    return SqliteSnapshotRepository(db, feed)


@pytest.fixture
def event_repo(db: Database) -> SqliteEventRepository:
    return SqliteEventRepository(db)


@pytest.fixture
def pending_queue(db: Database) -> PendingWriteQueue:
    return PendingWriteQueue(db)


@pytest.fixture
def store(
    score_repo: SqliteScoreRepository,
    snapshot_repo: SqliteSnapshotRepository,
    event_repo: SqliteEventRepository,
    clock: FakeClock,
) -> SnapshotStore:
    return SnapshotStore(score_repo, snapshot_repo, event_repo, clock=clock)
