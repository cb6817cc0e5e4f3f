"""Error taxonomy for the queue engine.

A duplicate feed message is not an error: the engine reports it as
``FeedOutcome.DUPLICATE`` and moves on.
"""

from __future__ import annotations


class FairQueueError(Exception):
    """Base class for all engine errors."""


class AuthRequired(FairQueueError):
    """No usable credential: never logged in, or expired and not refreshable."""


class SubscriptionError(FairQueueError):
    """Twitch rejected an EventSub subscription request (e.g. missing scope)."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ProfileResolutionError(FairQueueError):
    """User profile lookup failed and no cached fallback could be served."""

    def __init__(self, user_id: str, reason: str = "lookup failed") -> None:
        super().__init__(f"could not resolve profile for user {user_id}: {reason}")
        self.user_id = user_id


class StoreError(FairQueueError):
    """Durable storage failure. The affected mutation was not applied."""


class ReconnectExhausted(FairQueueError):
    """The feed could not be re-established within the backoff ceiling."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"EventSub reconnect failed {attempts} times in a row")
        self.attempts = attempts


class QueueItemNotFound(FairQueueError):
    """The given id is not an active queue item."""

    def __init__(self, item_id: str) -> None:
        super().__init__(f"queue item not found: {item_id}")
        self.item_id = item_id
