"""Data models shared by repositories, services and routers."""

from .credential import Credential, NeedsLogin
from .queue import (
    DeleteMode,
    EnqueueOutcome,
    ParticipationRecord,
    QueueItem,
    QueueSnapshotEntry,
)
from .user_cache import UserProfile

__all__ = [
    "Credential",
    "DeleteMode",
    "EnqueueOutcome",
    "NeedsLogin",
    "ParticipationRecord",
    "QueueItem",
    "QueueSnapshotEntry",
    "UserProfile",
]
