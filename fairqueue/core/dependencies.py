"""Dependency injection utilities for FastAPI"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import HTTPException

from fairqueue.eventsub.listener import EventSubListener
from fairqueue.services.credential_store import CredentialStore
from fairqueue.services.oauth_state import OAuthStateStore
from fairqueue.services.queue_engine import QueueEngine
from fairqueue.services.twitch_api import TwitchAPIClient
from fairqueue.shared.repositories.kv import KeyValueRepository

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the routers need, built once by the app lifespan."""

    engine: QueueEngine
    credentials: CredentialStore
    twitch_api: TwitchAPIClient
    kv: KeyValueRepository
    listener: EventSubListener | None = None


_services: Services | None = None
_oauth_states = OAuthStateStore()


def init_services(services: Services | None) -> None:
    global _services
    _services = services


def _require_services() -> Services:
    if _services is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return _services


# ============================================
# Service Dependencies
# ============================================


def get_queue_engine() -> QueueEngine:
    return _require_services().engine


def get_credential_store() -> CredentialStore:
    return _require_services().credentials


def get_twitch_api() -> TwitchAPIClient:
    return _require_services().twitch_api


def get_kv_repository() -> KeyValueRepository:
    return _require_services().kv


def get_listener() -> EventSubListener | None:
    """The feed listener, or None before startup / when no rewards are configured."""
    return _services.listener if _services is not None else None


def get_oauth_states() -> OAuthStateStore:
    return _oauth_states
