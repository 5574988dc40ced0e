"""Builders and fake clocks shared by the leaderboard tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from leaderboard.dal.models import EventInfo
from leaderboard.rotation.types import LeaderboardBoard
from leaderboard.scoring.models import PlayerHoleScore, PlayerTotalScore

BASE_TIME = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def hole(
    player_id: str,
    score: int | None,
    hole_number: int | None,
    *,
    name: str | None = None,
    created_at: datetime | None = BASE_TIME,
    event_id: str | None = "event-1",
    row_id: str | None = None,
    published: bool = False,
) -> PlayerHoleScore:
    """A score row with readable defaults: name is derived from the player id."""
    return PlayerHoleScore(
        id=row_id,
        event_id=event_id,
        player_id=player_id,
        name=name if name is not None else player_id.upper(),
        score=score,
        hole_number=hole_number,
        created_at=created_at,
        updated_at=created_at,
        published=published,
    )


def total(
    player_id: str,
    scores: list[int | None],
    *,
    name: str | None = None,
    last_updated: str = "",
) -> PlayerTotalScore:
    played = [s for s in scores if s is not None]
    return PlayerTotalScore(
        player_id=player_id,
        name=name if name is not None else player_id.upper(),
        total_score=sum(played),
        hole_in_ones=played.count(1),
        scores=scores,
        last_updated=last_updated,
    )


def score_payload(player_id: str, scores: list[int | None], **overrides: Any) -> dict[str, Any]:  # noqa: ANN401
    """A PlayerTotalScore in its stored JSON shape."""
    payload = total(player_id, scores).to_payload()
    payload.update(overrides)
    return payload


def event(event_id: str = "event-1", **overrides: Any) -> EventInfo:  # noqa: ANN401
    data: dict[str, Any] = {
        "id": event_id,
        "title": "Summer Cup",
        "hole_count": 3,
        "created_at": BASE_TIME,
    }
    data.update(overrides)
    return EventInfo(**data)


def board(board_id: str, event_id: str = "event-1", time_filter: str = "all_time") -> LeaderboardBoard:
    return LeaderboardBoard(id=board_id, event_id=event_id, time_filter=time_filter)


class FakeClock:
    """Wall clock for code that takes ``clock: Callable[[], datetime]``."""

    def __init__(self, now: datetime = BASE_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


class FakeMonotonic:
    """Monotonic clock in seconds for the interval timers."""

    def __init__(self, start: float = 1000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance_ms(self, ms: float) -> None:
        self.value += ms / 1000


async def settle(rounds: int = 20) -> None:
    """Let queued feed consumers and background tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_until(condition: Callable[[], bool], timeout: float = 1.0) -> None:
    async def poll() -> None:
        while not condition():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout=timeout)
