"""Tests for EventSub envelope parsing."""

import json

import pytest

from fairqueue.eventsub.messages import (
    MalformedMessage,
    parse_message,
    parse_redemption,
    parse_session,
)

from .fakes import redemption_frame


def test_parse_welcome_session():
    frame = json.dumps(
        {
            "metadata": {"message_id": "w1", "message_type": "session_welcome"},
            "payload": {
                "session": {
                    "id": "session-1",
                    "status": "connected",
                    "keepalive_timeout_seconds": 10,
                    "reconnect_url": None,
                }
            },
        }
    )

    session = parse_session(parse_message(frame))

    assert session.id == "session-1"
    assert session.keepalive_timeout_seconds == 10
    assert session.reconnect_url is None


def test_parse_redemption_event():
    message = parse_message(redemption_frame("m1", "reward-join", "u1", "alice"))

    event = parse_redemption(message)

    assert event is not None
    assert (event.user_id, event.user_login, event.reward_id) == ("u1", "alice", "reward-join")
    assert event.broadcaster_user_id == "b1"


def test_keepalive_is_not_a_redemption():
    message = parse_message(
        json.dumps({"metadata": {"message_id": "k1", "message_type": "session_keepalive"}, "payload": {}})
    )

    assert parse_redemption(message) is None


@pytest.mark.parametrize("raw", ["not json", "[]", json.dumps({"payload": {}})])
def test_malformed_frames_raise(raw):
    with pytest.raises(MalformedMessage):
        parse_message(raw)


def test_redemption_without_reward_raises():
    data = json.loads(redemption_frame("m1", "reward-join", "u1"))
    del data["payload"]["event"]["reward"]

    with pytest.raises(MalformedMessage):
        parse_redemption(parse_message(json.dumps(data)))
