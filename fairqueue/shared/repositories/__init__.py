"""Repository layer over the PostgreSQL store."""

from .credential import CredentialRepository
from .kv import KeyValueRepository
from .processed_message import ProcessedMessageRepository
from .queue import FairQueueRepository
from .user_cache import UserCacheRepository

__all__ = [
    "CredentialRepository",
    "FairQueueRepository",
    "KeyValueRepository",
    "ProcessedMessageRepository",
    "UserCacheRepository",
]
