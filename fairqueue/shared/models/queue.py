"""Data models for queue_items and participations tables."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


@dataclass
class QueueItem:
    """One person currently waiting."""

    id: str
    user_id: str
    login: str
    display_name: str
    avatar_url: str
    enqueued_at: datetime
    position: int


@dataclass
class ParticipationRecord:
    """A completed participation. Never updated or deleted."""

    user_id: str
    completed_at: datetime


@dataclass
class QueueSnapshotEntry:
    """Read model served to the admin page and the overlay."""

    id: str
    user_id: str
    login: str
    display_name: str
    avatar_url: str
    enqueued_at: datetime
    position: int
    recent_participation_count: int = 0


@dataclass
class EnqueueOutcome:
    """Result of an enqueue attempt.

    ``added`` is False when the user already had an active item; ``item``
    is then the existing entry, left where it was.
    """

    added: bool
    item: QueueItem


class DeleteMode(StrEnum):
    COMPLETED = "completed"
    CANCELED = "canceled"
