"""Services package

Business logic between the routers / feed listener and the repositories.
"""

from .credential_store import CredentialStore
from .deduplicator import EventDeduplicator
from .profile_cache import ProfileCache
from .queue_engine import FeedOutcome, QueueEngine
from .twitch_api import TwitchAPIClient

__all__ = [
    "CredentialStore",
    "EventDeduplicator",
    "FeedOutcome",
    "ProfileCache",
    "QueueEngine",
    "TwitchAPIClient",
]
