"""Shape validation for stored and pushed leaderboard payloads.

Snapshots and realtime messages are untrusted JSON. Parsing returns a tagged
result instead of raising, so callers branch on Valid/Invalid explicitly and
a single bad element rejects the whole payload.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import TypeAdapter, ValidationError

from leaderboard.scoring.models import PlayerTotalScore

_SCORES_ADAPTER: TypeAdapter[list[PlayerTotalScore]] = TypeAdapter(list[PlayerTotalScore])


@dataclass(frozen=True)
class Valid:
    payload: Any


@dataclass(frozen=True)
class Invalid:
    reason: str


ParseResult = Valid | Invalid


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "<root>"
    return f"{location}: {first['msg']} ({exc.error_count()} error(s))"


def validate_leaderboard_scores(raw: object) -> ParseResult:
    """Validate a list of PlayerTotalScore payloads (camelCase keys).

    Returns Valid(list[PlayerTotalScore]) or Invalid(reason).
    """
    if not isinstance(raw, list):
        return Invalid(f"expected a list of scores, got {type(raw).__name__}")
    try:
        return Valid(_SCORES_ADAPTER.validate_python(raw))
    except ValidationError as exc:
        return Invalid(_describe(exc))


def dump_scores(scores: list[PlayerTotalScore]) -> list[dict[str, Any]]:
    """Serialize totals to the stored/pushed payload shape."""
    return [score.to_payload() for score in scores]
