"""Decide which events a display shows and turn them into rotation boards."""

from __future__ import annotations

from datetime import date
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from leaderboard.rotation.types import LeaderboardBoard
from leaderboard.scoring.time_filters import get_label

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from leaderboard.dal.models import EventInfo

logger = structlog.get_logger()


class EventStatus(StrEnum):
    LIVE = "live"
    WAITING = "waiting"
    UPCOMING = "upcoming"
    ARCHIVED = "archived"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]

    @property
    def is_live(self) -> bool:
        return self is EventStatus.LIVE


_STATUS_LABELS = {
    EventStatus.LIVE: "Live",
    EventStatus.WAITING: "Waiting for Scores",
    EventStatus.UPCOMING: "Upcoming",
    EventStatus.ARCHIVED: "Archived",
}


def event_status(event: EventInfo, score_count: int, today: date) -> EventStatus:
    """Status of an event on a given day.

    Archived events stay archived. Events without a date are ongoing, as are
    one-day events on their day: live once they have scores, waiting before.
    """
    if event.archived:
        return EventStatus.ARCHIVED
    if event.event_date is not None:
        if event.event_date > today:
            return EventStatus.UPCOMING
        if event.event_date < today:
            return EventStatus.ARCHIVED
    return EventStatus.LIVE if score_count > 0 else EventStatus.WAITING


def should_display_event(event: EventInfo, score_count: int, today: date) -> bool:
    if not event.show_on_main_leaderboard:
        logger.debug("event hidden from main leaderboard", event_id=event.id)
        return False
    if event.event_date is not None and event.event_date != today:
        logger.debug("event not running today", event_id=event.id, event_date=event.event_date)
        return False
    if score_count <= 0:
        logger.debug("event has no scores yet", event_id=event.id)
        return False
    return True


def displayable_events(
    events: Iterable[EventInfo],
    score_counts: Mapping[str, int],
    today: date,
    limit: int | None = None,
) -> list[EventInfo]:
    """Events to show, newest event date first, then newest created first."""
    shown = [e for e in events if should_display_event(e, score_counts.get(e.id, 0), today)]
    shown.sort(key=lambda e: (e.event_date or date.min, e.created_at), reverse=True)
    return shown if limit is None else shown[:limit]


def build_boards(events: Iterable[EventInfo]) -> list[LeaderboardBoard]:
    """One board per (event, configured time filter), in display order."""
    boards: list[LeaderboardBoard] = []
    for event in events:
        for time_filter in event.time_filters:
            boards.append(
                LeaderboardBoard(
                    id=f"{event.id}:{time_filter}",
                    event_id=event.id,
                    time_filter=str(time_filter),
                    title=f"{event.title} - {get_label(time_filter)}" if event.title else get_label(time_filter),
                    priority=len(boards),
                ),
            )
    return boards
