"""Pytest configuration and fixtures."""

import os

import pytest

# Settings are read from the environment; keep tests off any real .env values.
os.environ.setdefault("CLIENT_ID", "test-client-id")
os.environ.setdefault("CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("DATABASE_URL", "postgresql://localhost/fairqueue_test")

from fairqueue.services.credential_store import CredentialStore  # noqa: E402
from fairqueue.services.deduplicator import EventDeduplicator  # noqa: E402
from fairqueue.services.profile_cache import ProfileCache  # noqa: E402
from fairqueue.services.queue_engine import QueueEngine  # noqa: E402
from testcontainers.postgres import PostgresContainer  # noqa: E402

from .fakes import (  # noqa: E402
    FakeClock,
    FakeCredentialRepository,
    FakeKeyValueRepository,
    FakeProcessedMessageRepository,
    FakeQueueRepository,
    FakeTwitchAPI,
    FakeUserCacheRepository,
)

TARGET_REWARD = "reward-join"
CANCEL_REWARD = "reward-leave"
WINDOW_SECS = 86400
POSTGRES_IMAGE = "postgres:16-alpine"


@pytest.fixture(scope="session")
def database_url():
    """A disposable PostgreSQL database for repository tests.

    Uses TEST_DATABASE_URL when set, otherwise starts a throwaway container.
    """
    url = os.getenv("TEST_DATABASE_URL")
    if url:
        yield url
        return
    with PostgresContainer(POSTGRES_IMAGE, driver=None) as postgres:
        yield postgres.get_connection_url()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def twitch_api():
    api = FakeTwitchAPI()
    api.add_user("u1", "alice")
    api.add_user("u2", "bob")
    api.add_user("u3", "carol")
    return api


@pytest.fixture
def queue_repo():
    return FakeQueueRepository()


@pytest.fixture
def message_repo():
    return FakeProcessedMessageRepository()


@pytest.fixture
def user_cache_repo():
    return FakeUserCacheRepository()


@pytest.fixture
def credential_repo():
    return FakeCredentialRepository()


@pytest.fixture
def kv_repo():
    return FakeKeyValueRepository()


@pytest.fixture
def deduplicator(message_repo, clock):
    return EventDeduplicator(message_repo, ttl_secs=WINDOW_SECS, clock=clock)


@pytest.fixture
def profiles(user_cache_repo, twitch_api, clock):
    return ProfileCache(user_cache_repo, twitch_api, ttl_secs=WINDOW_SECS, clock=clock)


@pytest.fixture
def credentials(credential_repo, twitch_api, clock):
    return CredentialStore(credential_repo, twitch_api, refresh_margin_secs=300, clock=clock)


@pytest.fixture
def engine(queue_repo, deduplicator, profiles, clock):
    return QueueEngine(
        queue_repo,
        deduplicator,
        profiles,
        target_reward_ids=[TARGET_REWARD],
        cancel_reward_id=CANCEL_REWARD,
        window_secs=WINDOW_SECS,
        clock=clock,
    )
