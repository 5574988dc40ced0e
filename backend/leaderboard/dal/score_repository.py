"""Abstract interface for raw score-row persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from leaderboard.scoring.models import PlayerHoleScore


class ScoreRepository(ABC):
    """Source of PlayerHoleScore rows.

    Implementations raise SourceError when the backing store fails.
    """

    @abstractmethod
    async def get_scores(
        self,
        event_id: str,
        since: datetime | None = None,
        *,
        published_only: bool = False,
    ) -> list[PlayerHoleScore]:
        """Rows for an event, optionally only those created at or after ``since``."""

    @abstractmethod
    async def add_score(self, row: PlayerHoleScore) -> PlayerHoleScore:
        """Insert a row. Inserting the same row id twice keeps the first copy."""

    @abstractmethod
    async def count_scores(self, event_id: str) -> int: ...
