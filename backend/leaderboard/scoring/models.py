"""Score models: raw per-hole rows, aggregated player totals, and time filters."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator, model_validator


class TimeFilter(StrEnum):
    ALL_TIME = "all_time"
    LAST_HOUR = "last_hour"
    LAST_DAY = "last_day"
    LAST_WEEK = "last_week"
    LAST_MONTH = "last_month"
    SINCE_START_OF_HOUR = "since_start_of_hour"
    SINCE_START_OF_DAY = "since_start_of_day"
    SINCE_START_OF_MONTH = "since_start_of_month"


class PlayerHoleScore(BaseModel, frozen=True):
    """One recorded score for one player on one hole.

    ``name`` is a display label only; players are identified by ``player_id``.
    ``score`` is None while the hole has not been played yet.
    """

    player_id: str = Field(min_length=1)
    name: str = "Unknown Player"
    score: int | None = None
    hole_number: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    # persistence columns, absent on rows built in memory
    id: str | None = None
    event_id: str | None = None
    published: bool = False

    @field_validator("created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @property
    def latest_timestamp(self) -> datetime | None:
        """The newer of updated_at and created_at, or None when neither is set."""
        stamps = [t for t in (self.created_at, self.updated_at) if t is not None]
        return max(stamps) if stamps else None


class PlayerTotalScore(BaseModel):
    """A player's aggregated result over one time window.

    Serialized with camelCase keys (``totalScore``, ``holeInOnes``,
    ``lastUpdated``), the shape stored in snapshots and pushed over the
    realtime feed. Validation is strict: stored payloads are never coerced.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    player_id: StrictStr
    name: StrictStr
    total_score: StrictInt = Field(alias="totalScore")
    hole_in_ones: StrictInt = Field(alias="holeInOnes")
    scores: list[StrictInt | None]
    last_updated: StrictStr = Field(alias="lastUpdated")

    @model_validator(mode="after")
    def _check_totals(self) -> PlayerTotalScore:
        played = [s for s in self.scores if s is not None]
        if self.total_score != sum(played):
            raise ValueError(f"totalScore {self.total_score} does not match hole scores {sum(played)}")
        if self.hole_in_ones != played.count(1):
            raise ValueError(f"holeInOnes {self.hole_in_ones} does not match hole scores {played.count(1)}")
        return self

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)
