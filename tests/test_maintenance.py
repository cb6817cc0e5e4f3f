"""Tests for the periodic maintenance pass."""

from datetime import timedelta

import pytest

from fairqueue.services.maintenance import maintenance_tick
from fairqueue.shared.models import Credential


class RecordingListener:
    def __init__(self, fail=False):
        self.calls = 0
        self.fail = fail

    async def reap_stale(self):
        self.calls += 1
        if self.fail:
            raise RuntimeError("helix down")
        return 0


@pytest.mark.asyncio
async def test_tick_refreshes_prunes_and_reaps(
    credentials, credential_repo, deduplicator, message_repo, twitch_api, clock
):
    credential_repo.credential = Credential("a", "r", clock.now + timedelta(seconds=60))
    message_repo.markers["ancient"] = clock.now - timedelta(days=3)
    listener = RecordingListener()

    await maintenance_tick(credentials, deduplicator, listener)

    assert twitch_api.refresh_calls == 1
    assert message_repo.markers == {}
    assert listener.calls == 1


@pytest.mark.asyncio
async def test_tick_skips_reaping_while_logged_out(credentials, deduplicator):
    listener = RecordingListener()

    await maintenance_tick(credentials, deduplicator, listener)

    assert listener.calls == 0


@pytest.mark.asyncio
async def test_failing_step_does_not_stop_the_others(
    credentials, credential_repo, deduplicator, message_repo, clock
):
    credential_repo.credential = Credential("a", "r", clock.now + timedelta(hours=2))
    message_repo.markers["ancient"] = clock.now - timedelta(days=3)
    listener = RecordingListener(fail=True)

    await maintenance_tick(credentials, deduplicator, listener)

    assert listener.calls == 1
    assert message_repo.markers == {}
