"""Map symbolic time filters to concrete cutoff timestamps.

Every function takes ``now`` explicitly; nothing here reads the clock. The
"since start of" filters zero fields in ``now``'s own timezone, so callers
pass a local-aware ``now`` to get local calendar boundaries.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog

from leaderboard.exceptions import ConfigurationError
from leaderboard.scoring.models import TimeFilter

logger = structlog.get_logger()

_ROLLING_WINDOWS: dict[TimeFilter, timedelta] = {
    TimeFilter.LAST_HOUR: timedelta(hours=1),
    TimeFilter.LAST_DAY: timedelta(hours=24),
    TimeFilter.LAST_WEEK: timedelta(days=7),
    TimeFilter.LAST_MONTH: timedelta(days=30),
}

_LABELS: dict[TimeFilter, str] = {
    TimeFilter.ALL_TIME: "All Time",
    TimeFilter.LAST_HOUR: "Last Hour",
    TimeFilter.LAST_DAY: "Last 24 Hours",
    TimeFilter.LAST_WEEK: "Last 7 Days",
    TimeFilter.LAST_MONTH: "Last 30 Days",
    TimeFilter.SINCE_START_OF_HOUR: "This Hour",
    TimeFilter.SINCE_START_OF_DAY: "Today",
    TimeFilter.SINCE_START_OF_MONTH: "This Month",
}


def parse_time_filter(value: object, *, strict: bool = False) -> TimeFilter:
    """Parse a time filter name, falling back to ALL_TIME for unknown values.

    Display paths prefer showing everything over failing, so an unknown
    name is logged and treated as all_time. With ``strict`` an unknown name
    raises ConfigurationError instead.
    """
    if isinstance(value, TimeFilter):
        return value
    try:
        return TimeFilter(value)
    except ValueError:
        if strict:
            raise ConfigurationError(f"unknown time filter: {value!r}") from None
        logger.warning("unknown time filter, using all_time", time_filter=value)
        return TimeFilter.ALL_TIME


def resolve_cutoff(time_filter: TimeFilter | str, now: datetime) -> datetime | None:
    """Return the earliest timestamp included by the filter, or None for no cutoff."""
    time_filter = parse_time_filter(time_filter)

    if time_filter is TimeFilter.ALL_TIME:
        return None
    if time_filter in _ROLLING_WINDOWS:
        return now - _ROLLING_WINDOWS[time_filter]
    if time_filter is TimeFilter.SINCE_START_OF_HOUR:
        return now.replace(minute=0, second=0, microsecond=0)
    if time_filter is TimeFilter.SINCE_START_OF_DAY:
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    # SINCE_START_OF_MONTH
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def is_within_window(timestamp: datetime | None, cutoff: datetime | None) -> bool:
    """Check a row timestamp against a cutoff (inclusive).

    Rows without a timestamp only pass when there is no cutoff.
    """
    if cutoff is None:
        return True
    if timestamp is None:
        return False
    return timestamp >= cutoff


def get_label(time_filter: TimeFilter | str) -> str:
    try:
        return _LABELS[TimeFilter(time_filter)]
    except ValueError:
        return _LABELS[TimeFilter.ALL_TIME]


def available_time_filters() -> list[tuple[TimeFilter, str]]:
    """All filters with their display labels, in declaration order."""
    return [(time_filter, _LABELS[time_filter]) for time_filter in TimeFilter]
