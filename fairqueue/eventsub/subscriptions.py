"""Redemption subscription upkeep for one EventSub WebSocket session."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from fairqueue.core.errors import SubscriptionError
from fairqueue.core.config import REDEMPTION_ADD_TYPE
from fairqueue.services.twitch_api import TwitchAPIClient

LOGGER = logging.getLogger("EventSub")


def _is_ours(sub: dict, broadcaster_id: str) -> bool:
    condition = sub.get("condition") or {}
    transport = sub.get("transport") or {}
    return (
        sub.get("type") == REDEMPTION_ADD_TYPE
        and transport.get("method") == "websocket"
        and condition.get("broadcaster_user_id") == broadcaster_id
    )


async def ensure_subscriptions(
    twitch_api: TwitchAPIClient,
    access_token: str,
    *,
    broadcaster_id: str,
    reward_ids: Iterable[str],
    session_id: str,
) -> list[str]:
    """Make sure each reward id has one enabled subscription on *session_id*.

    Returns the reward ids that needed a new subscription. Raises
    SubscriptionError if listing or any creation fails.
    """
    existing = await twitch_api.list_eventsub_subscriptions(access_token)
    covered = {
        (sub.get("condition") or {}).get("reward_id")
        for sub in existing
        if _is_ours(sub, broadcaster_id)
        and sub.get("status") == "enabled"
        and (sub.get("transport") or {}).get("session_id") == session_id
    }

    created: list[str] = []
    for reward_id in reward_ids:
        if reward_id in covered:
            continue
        await twitch_api.create_redemption_subscription(
            access_token,
            broadcaster_id=broadcaster_id,
            reward_id=reward_id,
            session_id=session_id,
        )
        created.append(reward_id)
        LOGGER.info(f"Subscribed to redemptions of reward {reward_id}")
    return created


async def reap_stale_subscriptions(
    twitch_api: TwitchAPIClient, access_token: str, *, broadcaster_id: str
) -> int:
    """Best-effort delete of our websocket subscriptions that are no longer enabled.

    Never raises. A 429 stops the pass; the next pass picks up the rest.
    """
    try:
        subscriptions = await twitch_api.list_eventsub_subscriptions(access_token)
    except SubscriptionError as e:
        LOGGER.warning(f"Skipping stale subscription cleanup: {e}")
        return 0

    removed = 0
    for sub in subscriptions:
        if not _is_ours(sub, broadcaster_id) or sub.get("status") == "enabled":
            continue
        try:
            await twitch_api.delete_eventsub_subscription(access_token, sub["id"])
            removed += 1
        except SubscriptionError as e:
            if e.status == 429:
                LOGGER.warning("Rate limited while removing stale subscriptions, stopping")
                break
            LOGGER.warning(f"Could not remove stale subscription {sub.get('id')}: {e}")

    if removed:
        LOGGER.info(f"Removed {removed} stale subscription(s)")
    return removed
