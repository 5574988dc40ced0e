"""Persistence models for the data access layer."""

from datetime import UTC, date, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from leaderboard.scoring.models import TimeFilter
from leaderboard.scoring.time_filters import parse_time_filter


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class EventInfo(BaseModel, frozen=True):
    """Read-only event metadata consumed by aggregation and board synthesis."""

    id: str = Field(min_length=1)
    title: str = ""
    hole_count: int = Field(default=18, ge=1)
    default_time_filter: TimeFilter = TimeFilter.ALL_TIME
    additional_time_filters: list[TimeFilter] = Field(default_factory=list)
    published: bool = False
    show_on_main_leaderboard: bool = True
    archived: bool = False
    event_date: date | None = None  # None for ongoing events
    created_at: datetime = Field(default_factory=_utc_now)

    @field_validator("default_time_filter", mode="before")
    @classmethod
    def _lenient_default_filter(cls, value: Any) -> TimeFilter:  # noqa: ANN401
        return parse_time_filter(value)

    @field_validator("additional_time_filters", mode="before")
    @classmethod
    def _lenient_additional_filters(cls, value: Any) -> list[TimeFilter]:  # noqa: ANN401
        if value is None:
            return []
        return [parse_time_filter(v) for v in value]

    @property
    def time_filters(self) -> list[TimeFilter]:
        """Default filter first, then the additional ones, without duplicates."""
        return list(dict.fromkeys([self.default_time_filter, *self.additional_time_filters]))


class StoredSnapshot(BaseModel, frozen=True):
    """A leaderboard_snapshot row as read from storage.

    ``scores`` is the raw decoded JSON and has not been validated.
    """

    id: str
    event_id: str
    time_filter: str
    scores: Any
    updated_at: datetime
