"""Abstract interface for event metadata lookups."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from leaderboard.dal.models import EventInfo


class EventRepository(ABC):
    """Read access to event metadata. The engine never modifies events."""

    @abstractmethod
    async def get_event(self, event_id: str) -> EventInfo | None: ...

    @abstractmethod
    async def list_events(self) -> list[EventInfo]: ...
