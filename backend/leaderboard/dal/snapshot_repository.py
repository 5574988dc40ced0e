"""Abstract interface for leaderboard snapshot persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datetime import datetime

    from leaderboard.dal.models import StoredSnapshot


class SnapshotRepository(ABC):
    """Key-value store of snapshots keyed by (event_id, time_filter).

    ``upsert`` replaces the whole row in one write; readers never observe a
    partially written snapshot.
    """

    @abstractmethod
    async def get(self, event_id: str, time_filter: str) -> StoredSnapshot | None:
        """The stored row, or None. Raises PayloadValidationError when the row cannot be decoded."""

    @abstractmethod
    async def upsert(
        self,
        event_id: str,
        time_filter: str,
        scores: list[dict[str, Any]],
        updated_at: datetime,
    ) -> StoredSnapshot: ...
