"""Broadcaster identity: who the stored credential belongs to."""

from __future__ import annotations

import logging

from fairqueue.services.twitch_api import TwitchAPIClient
from fairqueue.shared.repositories.kv import KeyValueRepository

logger = logging.getLogger(__name__)


async def resolve_broadcaster_id(
    kv: KeyValueRepository, twitch_api: TwitchAPIClient, access_token: str
) -> str | None:
    """Stored broadcaster id, asking Helix for the token's owner when missing."""
    broadcaster_id, _ = await kv.get_broadcaster()
    if broadcaster_id:
        return broadcaster_id

    user = await twitch_api.get_self(access_token)
    if not user:
        logger.error("Could not resolve broadcaster from access token")
        return None

    await kv.set_broadcaster(user["id"], user["login"])
    logger.info(f"Broadcaster resolved: {user['login']} ({user['id']})")
    return user["id"]
