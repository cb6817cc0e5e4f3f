"""EventSub WebSocket message envelopes.

Every frame is ``{"metadata": {...}, "payload": {...}}``; ``message_type``
selects how the payload is read.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from fairqueue.core.config import REDEMPTION_ADD_TYPE

SESSION_WELCOME = "session_welcome"
SESSION_KEEPALIVE = "session_keepalive"
SESSION_RECONNECT = "session_reconnect"
NOTIFICATION = "notification"
REVOCATION = "revocation"


class MalformedMessage(ValueError):
    """A frame that is not a valid EventSub envelope."""


@dataclass
class EventSubMessage:
    message_id: str
    message_type: str
    timestamp: str = ""
    subscription_type: str = ""
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class SessionInfo:
    """The ``session`` object of welcome and reconnect messages."""

    id: str
    status: str = ""
    keepalive_timeout_seconds: int | None = None
    reconnect_url: str | None = None


@dataclass
class RedemptionEvent:
    """A ``channel.channel_points_custom_reward_redemption.add`` event."""

    redemption_id: str
    broadcaster_user_id: str
    user_id: str
    user_login: str
    user_name: str
    reward_id: str
    reward_title: str = ""
    redeemed_at: str = ""


def parse_message(raw: str | bytes) -> EventSubMessage:
    try:
        data = json.loads(raw)
        metadata = data["metadata"]
        return EventSubMessage(
            message_id=str(metadata["message_id"]),
            message_type=str(metadata["message_type"]),
            timestamp=metadata.get("message_timestamp", ""),
            subscription_type=metadata.get("subscription_type", ""),
            payload=data.get("payload") or {},
        )
    except (ValueError, KeyError, TypeError) as e:
        raise MalformedMessage(f"bad EventSub frame: {e}") from e


def parse_session(message: EventSubMessage) -> SessionInfo:
    try:
        session = message.payload["session"]
        return SessionInfo(
            id=str(session["id"]),
            status=session.get("status", ""),
            keepalive_timeout_seconds=session.get("keepalive_timeout_seconds"),
            reconnect_url=session.get("reconnect_url"),
        )
    except (KeyError, TypeError) as e:
        raise MalformedMessage(f"bad session payload: {e}") from e


def parse_redemption(message: EventSubMessage) -> RedemptionEvent | None:
    """The redemption carried by *message*, or None if it is something else."""
    if message.message_type != NOTIFICATION or message.subscription_type != REDEMPTION_ADD_TYPE:
        return None
    try:
        event = message.payload["event"]
        reward = event["reward"]
        return RedemptionEvent(
            redemption_id=str(event.get("id", "")),
            broadcaster_user_id=str(event.get("broadcaster_user_id", "")),
            user_id=str(event["user_id"]),
            user_login=event.get("user_login", ""),
            user_name=event.get("user_name", ""),
            reward_id=str(reward["id"]),
            reward_title=reward.get("title", ""),
            redeemed_at=event.get("redeemed_at", ""),
        )
    except (KeyError, TypeError) as e:
        raise MalformedMessage(f"bad redemption event: {e}") from e
