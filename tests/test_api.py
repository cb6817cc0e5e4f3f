"""Tests for the HTTP API (lifespan not run; dependencies overridden)."""

from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from fairqueue.app import create_app
from fairqueue.core.config import Settings, get_settings
from fairqueue.core.dependencies import (
    get_credential_store,
    get_kv_repository,
    get_listener,
    get_oauth_states,
    get_queue_engine,
    get_twitch_api,
)
from fairqueue.core.errors import StoreError
from fairqueue.services.oauth_state import OAuthStateStore
from fairqueue.shared.models import Credential

from .conftest import CANCEL_REWARD, TARGET_REWARD
from .fakes import redemption

API_BASE_URL = "http://test"


@pytest.fixture
def settings():
    return Settings(
        client_id="cid",
        client_secret="secret",
        database_url="postgresql://localhost/fairqueue_test",
        target_reward_ids=f"{TARGET_REWARD}, {TARGET_REWARD}",
        cancel_reward_id=CANCEL_REWARD,
        participation_window_secs=3600,
        _env_file=None,
    )


@pytest.fixture
def oauth_states():
    return OAuthStateStore()


@pytest.fixture
def app(settings, engine, credentials, twitch_api, kv_repo, oauth_states):
    app = create_app(settings)
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_queue_engine] = lambda: engine
    app.dependency_overrides[get_credential_store] = lambda: credentials
    app.dependency_overrides[get_twitch_api] = lambda: twitch_api
    app.dependency_overrides[get_kv_repository] = lambda: kv_repo
    app.dependency_overrides[get_listener] = lambda: None
    app.dependency_overrides[get_oauth_states] = lambda: oauth_states
    return app


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url=API_BASE_URL) as client:
        yield client


@pytest.fixture
async def queued(engine):
    for n, user in enumerate(["u1", "u2", "u3"]):
        await engine.handle_notification(redemption(f"m{n}", TARGET_REWARD, user))
    return await engine.snapshot()


def _login(credential_repo, kv_repo, clock):
    credential_repo.credential = Credential(
        access_token="access", refresh_token="refresh", expires_at=clock.now + timedelta(hours=4)
    )
    kv_repo.values.update(broadcaster_id="b1", broadcaster_login="streamer")


# ============================================
# Queue
# ============================================


@pytest.mark.asyncio
async def test_get_queue_returns_ordered_snapshot(client, queued):
    response = await client.get("/api/queue")

    assert response.status_code == 200
    data = response.json()
    assert [e["login"] for e in data] == ["alice", "bob", "carol"]
    assert set(data[0]) == {
        "id",
        "user_id",
        "login",
        "display_name",
        "avatar_url",
        "enqueued_at",
        "position",
        "recent_participation_count",
    }


@pytest.mark.asyncio
async def test_overlay_queue_exposes_display_fields_only(client, queued):
    response = await client.get("/api/overlay/queue")

    assert response.status_code == 200
    assert response.json()[1] == {
        "id": queued[1].id,
        "login": "bob",
        "display_name": "Bob",
        "avatar_url": "https://cdn.example/bob.png",
    }


@pytest.mark.asyncio
async def test_move_endpoints(client, queued):
    response = await client.post(f"/api/queue/{queued[2].id}/move_up")
    assert response.status_code == 204

    response = await client.post(f"/api/queue/{queued[0].id}/move_down")
    assert response.status_code == 204

    logins = [e["login"] for e in (await client.get("/api/queue")).json()]
    assert logins == ["carol", "alice", "bob"]


@pytest.mark.asyncio
async def test_move_unknown_item_is_404(client):
    response = await client.post("/api/queue/nope/move_up")

    assert response.status_code == 404
    assert "nope" in response.json()["detail"]


@pytest.mark.asyncio
async def test_delete_completed_records_participation(client, queued, queue_repo):
    response = await client.post(f"/api/queue/{queued[0].id}/delete", json={"mode": "completed"})

    assert response.status_code == 204
    assert await queue_repo.participation_count("u1") == 1


@pytest.mark.asyncio
async def test_delete_canceled_records_nothing(client, queued, queue_repo):
    response = await client.post(f"/api/queue/{queued[0].id}/delete", json={"mode": "canceled"})

    assert response.status_code == 204
    assert await queue_repo.participation_count() == 0


@pytest.mark.asyncio
async def test_delete_with_bad_mode_is_422(client, queued):
    response = await client.post(f"/api/queue/{queued[0].id}/delete", json={"mode": "banished"})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_delete_unknown_item_is_404(client):
    response = await client.post("/api/queue/nope/delete", json={"mode": "completed"})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_store_failure_is_503(client, queue_repo, monkeypatch):
    async def broken(*args, **kwargs):
        raise StoreError("snapshot failed: ConnectionRefusedError")

    monkeypatch.setattr(queue_repo, "snapshot", broken)

    response = await client.get("/api/queue")

    assert response.status_code == 503
    assert response.json() == {"detail": "snapshot failed: ConnectionRefusedError"}


# ============================================
# Status / rewards
# ============================================


@pytest.mark.asyncio
async def test_status_before_login(client):
    response = await client.get("/api/status")

    assert response.status_code == 200
    data = response.json()
    assert data["authenticated"] is False
    assert data["broadcaster_id"] is None
    assert data["participation_window_secs"] == 3600
    assert data["target_reward_ids"] == [TARGET_REWARD]
    assert data["cancel_reward_id"] == CANCEL_REWARD
    assert data["feed_state"] == "disconnected"
    assert data["feed_alert"] is None
    assert "server_time" in data


@pytest.mark.asyncio
async def test_status_after_login(client, credential_repo, kv_repo, clock):
    _login(credential_repo, kv_repo, clock)

    data = (await client.get("/api/status")).json()

    assert data["authenticated"] is True
    assert data["broadcaster_login"] == "streamer"


@pytest.mark.asyncio
async def test_rewards_requires_login(client):
    response = await client.get("/api/rewards")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_rewards_passthrough(client, credential_repo, kv_repo, twitch_api, clock):
    _login(credential_repo, kv_repo, clock)
    twitch_api.rewards = [{"id": "r1", "title": "Join queue", "cost": 500, "is_enabled": True}]

    response = await client.get("/api/rewards")

    assert response.status_code == 200
    assert response.json() == twitch_api.rewards


# ============================================
# OAuth
# ============================================


@pytest.mark.asyncio
async def test_auth_start_redirects_with_state(client):
    response = await client.get("/auth/start")

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://id.twitch.tv/oauth2/authorize")


@pytest.mark.asyncio
async def test_callback_stores_credential_and_broadcaster(
    client, oauth_states, twitch_api, credential_repo, kv_repo, clock
):
    state = oauth_states.issue()
    twitch_api.token_data = {
        "access_token": "a",
        "refresh_token": "r",
        "expires_in": 14400,
        "user_id": "b1",
        "login": "streamer",
    }

    response = await client.get("/auth/callback", params={"code": "xyz", "state": state})

    assert response.status_code == 303
    assert response.headers["location"] == "/admin"
    assert credential_repo.credential.access_token == "a"
    assert credential_repo.credential.expires_at == clock.now + timedelta(seconds=14400)
    assert kv_repo.values == {"broadcaster_id": "b1", "broadcaster_login": "streamer"}


@pytest.mark.asyncio
async def test_callback_stores_credential_when_owner_lookup_failed(
    client, oauth_states, twitch_api, credential_repo, kv_repo, clock
):
    kv_repo.values.update(broadcaster_id="old", broadcaster_login="previous")
    state = oauth_states.issue()
    twitch_api.token_data = {
        "access_token": "a",
        "refresh_token": "r",
        "expires_in": 14400,
        "user_id": None,
        "login": None,
    }

    response = await client.get("/auth/callback", params={"code": "xyz", "state": state})

    assert response.status_code == 303
    assert credential_repo.credential.access_token == "a"
    assert kv_repo.values == {}


@pytest.mark.asyncio
async def test_callback_rejects_unknown_state(client):
    response = await client.get("/auth/callback", params={"code": "xyz", "state": "forged"})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_callback_state_is_single_use(client, oauth_states, twitch_api):
    state = oauth_states.issue()
    twitch_api.token_data = {
        "access_token": "a",
        "refresh_token": "r",
        "expires_in": 14400,
        "user_id": "b1",
        "login": "streamer",
    }

    first = await client.get("/auth/callback", params={"code": "xyz", "state": state})
    second = await client.get("/auth/callback", params={"code": "xyz", "state": state})

    assert first.status_code == 303
    assert second.status_code == 400


@pytest.mark.asyncio
async def test_callback_reports_oauth_error(client):
    response = await client.get("/auth/callback", params={"error": "access_denied"})

    assert response.status_code == 400
    assert "access_denied" in response.json()["detail"]


@pytest.mark.asyncio
async def test_logout_clears_credential(client, credential_repo, kv_repo, clock):
    _login(credential_repo, kv_repo, clock)

    response = await client.post("/auth/logout")

    assert response.status_code == 204
    assert credential_repo.credential is None


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class HealthyDatabase:
    async def check_health(self):
        return True


@pytest.mark.asyncio
async def test_ready_reports_missing_database(client):
    response = await client.get("/ready")

    assert response.status_code == 503
    assert response.json() == {"status": "not_ready", "db_connected": False}


@pytest.mark.asyncio
async def test_ready_when_database_answers(app, client):
    app.state.db_manager = HealthyDatabase()

    response = await client.get("/ready")

    assert response.status_code == 200
    assert response.json()["db_connected"] is True
