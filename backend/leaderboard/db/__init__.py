"""SQLite implementations of the leaderboard repositories."""

from leaderboard.db.event_repository import SqliteEventRepository
from leaderboard.db.pending_queue import PendingWrite, PendingWriteQueue
from leaderboard.db.score_repository import SqliteScoreRepository
from leaderboard.db.snapshot_repository import SqliteSnapshotRepository

__all__ = [
    "PendingWrite",
    "PendingWriteQueue",
    "SqliteEventRepository",
    "SqliteScoreRepository",
    "SqliteSnapshotRepository",
]
