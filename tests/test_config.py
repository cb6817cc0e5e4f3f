"""Tests for reward id handling in settings."""

from fairqueue.core.config import Settings


def _settings(**overrides):
    return Settings(
        client_id="cid",
        client_secret="secret",
        database_url="postgresql://localhost/fairqueue_test",
        _env_file=None,
        **overrides,
    )


def test_reward_ids_drop_blanks_and_duplicates():
    settings = _settings(target_reward_ids=" join , ,join,extra ")

    assert settings.reward_ids == ["join", "extra"]


def test_subscribed_reward_ids_add_cancel_reward():
    settings = _settings(target_reward_ids="join", cancel_reward_id=" leave ")

    assert settings.subscribed_reward_ids == ["join", "leave"]


def test_cancel_reward_alone_subscribes_nothing():
    settings = _settings(target_reward_ids="", cancel_reward_id="leave")

    assert settings.reward_ids == []
    assert settings.subscribed_reward_ids == []
