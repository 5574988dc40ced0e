"""Data access layer: repository interfaces and persistence models."""

from leaderboard.dal.event_repository import EventRepository
from leaderboard.dal.models import EventInfo, StoredSnapshot
from leaderboard.dal.score_repository import ScoreRepository
from leaderboard.dal.snapshot_repository import SnapshotRepository

__all__ = [
    "EventInfo",
    "EventRepository",
    "ScoreRepository",
    "SnapshotRepository",
    "StoredSnapshot",
]
