"""Realtime change messages and their parsers.

Two message kinds travel over the feed, mirroring row-level change
notifications from the database:

- SnapshotChange on the ``leaderboard_snapshot`` topic: a full replacement
  of one (event_id, time_filter) snapshot.
- ScoreRowChange on the ``scorecard`` topic: an INSERT/UPDATE/DELETE of a
  raw score row.

Inbound messages are untyped (dicts or models from any publisher) and are
parsed into Valid/Invalid before any field is trusted.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from leaderboard.scoring.models import PlayerTotalScore
from leaderboard.snapshots.validation import Invalid, ParseResult, Valid, validate_leaderboard_scores

SNAPSHOT_TOPIC = "leaderboard_snapshot"
SCORE_TOPIC = "scorecard"


class ChangeType(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChannelStatus(StrEnum):
    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    CLOSED = "CLOSED"


class SnapshotChange(BaseModel, frozen=True):
    event_id: str = Field(min_length=1)
    time_filter: str = Field(min_length=1)
    scores: list[Any]


class ScoreRowChange(BaseModel, frozen=True):
    model_config = ConfigDict(populate_by_name=True)

    event_type: ChangeType = Field(alias="eventType")
    row: dict[str, Any]

    @property
    def event_id(self) -> str | None:
        value = self.row.get("event_id")
        return value if isinstance(value, str) and value else None


class ScoredSnapshotChange(BaseModel, frozen=True):
    """A SnapshotChange whose scores passed validation."""

    event_id: str
    time_filter: str
    scores: list[PlayerTotalScore]


def _as_dict(message: object) -> dict[str, Any] | None:
    if isinstance(message, BaseModel):
        return message.model_dump(by_alias=True)
    if isinstance(message, dict):
        return message
    return None


def parse_snapshot_change(message: object) -> ParseResult:
    """Parse a snapshot notification. Valid payload is a ScoredSnapshotChange."""
    data = _as_dict(message)
    if data is None:
        return Invalid(f"expected a mapping, got {type(message).__name__}")
    try:
        change = SnapshotChange.model_validate(data)
    except ValidationError as exc:
        return Invalid(f"malformed snapshot change: {exc.error_count()} error(s)")

    scores = validate_leaderboard_scores(change.scores)
    if isinstance(scores, Invalid):
        return Invalid(f"invalid scores format: {scores.reason}")
    return Valid(ScoredSnapshotChange(event_id=change.event_id, time_filter=change.time_filter, scores=scores.payload))


def parse_score_change(message: object) -> ParseResult:
    """Parse a raw score-row notification. Valid payload is a ScoreRowChange."""
    data = _as_dict(message)
    if data is None:
        return Invalid(f"expected a mapping, got {type(message).__name__}")
    try:
        change = ScoreRowChange.model_validate(data)
    except ValidationError as exc:
        return Invalid(f"malformed score change: {exc.error_count()} error(s)")
    if change.event_id is None:
        return Invalid("score change row has no event_id")
    return Valid(change)
