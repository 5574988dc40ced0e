"""Typed errors for the leaderboard engine.

SourceError crosses module boundaries: the snapshot store turns it into a
failed RefreshResult and the realtime adapter routes it into the
subscriber's error channel. PayloadValidationError is raised by repositories
for rows they cannot decode and is handled by skipping the row or treating the
snapshot as missing. SubscriptionError describes a channel failure reported
through on_update. ConfigurationError is raised only by strict time filter
parsing; display paths fall back to all_time instead.
"""


class LeaderboardError(Exception):
    """Base class for leaderboard engine errors."""


class PayloadValidationError(LeaderboardError):
    """A score row, snapshot or realtime payload does not have the expected shape."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class SourceError(LeaderboardError):
    """The backing store failed to answer a query or accept a write."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed: {detail}")


class SubscriptionError(LeaderboardError):
    """The realtime channel reported a failure for a subscription."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"realtime channel error: {detail}")


class ConfigurationError(LeaderboardError):
    """A configured value (e.g. a time filter name) is not recognized."""
