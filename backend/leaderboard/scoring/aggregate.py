"""
Turn raw per-hole score rows into ranked player totals.

Aggregation is pure and synchronous: no I/O, no clock reads. Rows arrive
already restricted to a time window (see time_filters.resolve_cutoff).

Hole placement policy: a row contributes only when its hole_number lies in
[1, hole_count]. Rows outside that range, or without a hole number, are left
out of both the positional ``scores`` list and the totals (and logged), so
``total_score`` is always the sum of the visible hole scores. When a player
has several rows for one hole, the most recently touched row wins; input
order breaks timestamp ties.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from leaderboard.scoring.models import PlayerHoleScore, PlayerTotalScore

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

logger = structlog.get_logger()

DEFAULT_TOP_N = 10


def _coerce_row(raw: PlayerHoleScore | Mapping[str, Any]) -> PlayerHoleScore | None:
    if isinstance(raw, PlayerHoleScore):
        return raw
    try:
        return PlayerHoleScore.model_validate(raw)
    except ValidationError as exc:
        logger.warning("skipping malformed score row", errors=exc.error_count(), row=raw)
        return None


def _newer(candidate: PlayerHoleScore, current: PlayerHoleScore) -> bool:
    """True when candidate should replace current for the same hole."""
    cand_ts, curr_ts = candidate.latest_timestamp, current.latest_timestamp
    if cand_ts is None or curr_ts is None:
        return cand_ts is not None or curr_ts is None
    return cand_ts >= curr_ts


def _build_total(rows: list[PlayerHoleScore], hole_count: int) -> PlayerTotalScore:
    by_hole: dict[int, PlayerHoleScore] = {}
    for row in rows:
        hole = row.hole_number
        current = by_hole.get(hole)
        if current is None or _newer(row, current):
            by_hole[hole] = row

    scores: list[int | None] = [None] * hole_count
    for hole, row in by_hole.items():
        scores[hole - 1] = row.score

    played = [s for s in scores if s is not None]
    timestamps: list[datetime] = [t for row in rows for t in (row.created_at, row.updated_at) if t is not None]

    return PlayerTotalScore(
        player_id=rows[0].player_id,
        name=rows[0].name,
        total_score=sum(played),
        hole_in_ones=played.count(1),
        scores=scores,
        last_updated=max(timestamps).isoformat() if timestamps else "",
    )


def aggregate(
    rows: Iterable[PlayerHoleScore | Mapping[str, Any]],
    hole_count: int,
) -> list[PlayerTotalScore]:
    """Group rows by player and compute one unsorted total per player.

    Malformed rows (e.g. missing player_id) are skipped. Players without any
    usable row produce no entry.
    """
    if hole_count < 1:
        raise ValueError(f"hole_count must be positive, got {hole_count}")

    grouped: dict[str, list[PlayerHoleScore]] = {}
    for raw in rows:
        row = _coerce_row(raw)
        if row is None:
            continue
        if row.hole_number is None or not 1 <= row.hole_number <= hole_count:
            logger.warning(
                "ignoring score row outside hole range",
                player_id=row.player_id,
                hole_number=row.hole_number,
                hole_count=hole_count,
            )
            continue
        grouped.setdefault(row.player_id, []).append(row)

    return [_build_total(player_rows, hole_count) for player_rows in grouped.values()]


def ranking_key(total: PlayerTotalScore) -> tuple[int, int, str, str]:
    """Sort key: lowest total first, then most hole-in-ones, then name.

    Names compare case-insensitively first and case-sensitively second, so
    "alice" and "Alice" stay adjacent but still have a fixed order.
    """
    return (total.total_score, -total.hole_in_ones, total.name.casefold(), total.name)


def sort_scores(scores: Iterable[PlayerTotalScore]) -> list[PlayerTotalScore]:
    return sorted(scores, key=ranking_key)


def top_n(scores: Iterable[PlayerTotalScore], n: int = DEFAULT_TOP_N) -> list[PlayerTotalScore]:
    if n < 0:
        raise ValueError(f"n must not be negative, got {n}")
    return sort_scores(scores)[:n]


def rank_rows(
    rows: Iterable[PlayerHoleScore | Mapping[str, Any]],
    hole_count: int,
    limit: int = DEFAULT_TOP_N,
) -> list[PlayerTotalScore]:
    """Aggregate, sort and truncate in one step (what a snapshot stores)."""
    return top_n(aggregate(rows, hole_count), limit)


def player_score(
    player_id: str,
    rows: Iterable[PlayerHoleScore | Mapping[str, Any]],
    hole_count: int,
) -> PlayerTotalScore | None:
    for total in aggregate(rows, hole_count):
        if total.player_id == player_id:
            return total
    return None


def player_scores(
    player_ids: Sequence[str],
    rows: Iterable[PlayerHoleScore | Mapping[str, Any]],
    hole_count: int,
) -> list[PlayerTotalScore]:
    """Ranked totals restricted to the given players."""
    if not player_ids:
        return []
    wanted = set(player_ids)
    return sort_scores(t for t in aggregate(rows, hole_count) if t.player_id in wanted)
