"""Board and rotation state models."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from leaderboard.scoring.models import PlayerTotalScore
from leaderboard.scoring.time_filters import parse_time_filter

DEFAULT_ROTATION_INTERVAL_MS = 30_000
DEFAULT_TICK_MS = 200


class LeaderboardBoard(BaseModel, frozen=True):
    """One unit of rotation: an event shown through one time filter."""

    id: str = Field(min_length=1)
    event_id: str = Field(min_length=1)
    time_filter: str
    title: str | None = None
    priority: int | None = None
    is_active: bool | None = None

    @field_validator("time_filter", mode="before")
    @classmethod
    def resolve_time_filter(cls, v: object) -> str:
        return str(parse_time_filter(v))

    @property
    def key(self) -> tuple[str, str]:
        return self.event_id, str(self.time_filter)


class BoardState(BaseModel, frozen=True):
    board: LeaderboardBoard
    scores: list[PlayerTotalScore] = Field(default_factory=list)
    error: str | None = None
    loading: bool = False
    last_updated: datetime | None = None


class BoardRuntimeConfig(BaseModel, frozen=True):
    rotation_enabled: bool = True
    rotation_interval_ms: int = Field(default=DEFAULT_ROTATION_INTERVAL_MS, ge=1)
    tick_ms: int = Field(default=DEFAULT_TICK_MS, ge=1)


class BoardRuntimeStatus(BaseModel, frozen=True):
    active_board_id: str | None
    time_until_rotation_ms: int | None  # None while not rotating
    is_rotating: bool
    last_updated: datetime | None
    board_count: int
    rotation_interval_ms: int


class RotationState(BaseModel, frozen=True):
    paused: bool = False
    time_remaining_seconds: int = 0
    interval_ms: int = DEFAULT_ROTATION_INTERVAL_MS
    transitioning: bool = False
