"""Repository tests against a real PostgreSQL database.

The database comes from the session ``database_url`` fixture; every test
truncates all tables.
"""

import asyncio
from datetime import timedelta

import asyncpg
import pytest

from fairqueue.core.errors import QueueItemNotFound
from fairqueue.shared.migrations.runner import MigrationRunner
from fairqueue.shared.models import Credential, UserProfile
from fairqueue.shared.repositories import (
    CredentialRepository,
    FairQueueRepository,
    KeyValueRepository,
    ProcessedMessageRepository,
    UserCacheRepository,
)

from .fakes import T0

WINDOW = 86400
_TABLES = "queue_items, participations, oauth_credentials, app_kv, processed_messages, user_cache"


async def _connect(database_url):
    pool = await asyncpg.create_pool(database_url, min_size=1, max_size=5)
    await MigrationRunner(pool).run_pending()
    return pool


@pytest.fixture
async def pool(database_url):
    pool = await _connect(database_url)
    async with pool.acquire() as conn:
        await conn.execute(f"TRUNCATE {_TABLES} RESTART IDENTITY")
    yield pool
    await pool.close()


@pytest.fixture
def repo(pool):
    return FairQueueRepository(pool)


def _profile(user_id, login=None):
    login = login or f"user{user_id}"
    return UserProfile(
        user_id=user_id,
        login=login,
        display_name=login.upper(),
        avatar_url=f"https://cdn/{login}.png",
        updated_at=T0,
    )


async def _add_participation(pool, user_id, completed_at):
    async with pool.acquire() as conn:
        await conn.execute(
            "INSERT INTO participations (user_id, completed_at) VALUES ($1, $2)", user_id, completed_at
        )


async def _logins(repo, now=T0, window=WINDOW):
    return [e.login for e in await repo.snapshot(now, window)]


# ============================================
# Fair queue
# ============================================


@pytest.mark.asyncio
async def test_migrations_are_idempotent(pool):
    assert await MigrationRunner(pool).run_pending() == []


@pytest.mark.asyncio
async def test_recent_participant_goes_behind_newcomer(repo, pool):
    await _add_participation(pool, "U", T0 - timedelta(seconds=3600))

    await repo.enqueue(_profile("U", "u"), T0, WINDOW)
    await repo.enqueue(_profile("V", "v"), T0, WINDOW)

    snapshot = await repo.snapshot(T0, WINDOW)
    assert [(e.login, e.recent_participation_count) for e in snapshot] == [("v", 0), ("u", 1)]

    await repo.complete(snapshot[0].id, T0)
    assert await _logins(repo) == ["u"]
    assert await repo.participation_count("V") == 1


@pytest.mark.asyncio
async def test_window_boundary_is_inclusive(repo, pool):
    await _add_participation(pool, "edge", T0 - timedelta(seconds=WINDOW))
    await _add_participation(pool, "old", T0 - timedelta(seconds=WINDOW + 1))

    assert await repo.recent_count("edge", T0, WINDOW) == 1
    assert await repo.recent_count("old", T0, WINDOW) == 0
    assert await repo.recent_count("edge", T0, 0) == 0


@pytest.mark.asyncio
async def test_enqueue_is_idempotent_per_user(repo):
    first = await repo.enqueue(_profile("a"), T0, WINDOW)
    await repo.enqueue(_profile("b"), T0, WINDOW)

    again = await repo.enqueue(_profile("a"), T0 + timedelta(seconds=5), WINDOW)

    assert first.added and not again.added
    assert again.item.id == first.item.id
    assert await _logins(repo) == ["usera", "userb"]


@pytest.mark.asyncio
async def test_concurrent_enqueues_of_same_user_add_one_item(repo):
    outcomes = await asyncio.gather(*(repo.enqueue(_profile("a"), T0, WINDOW) for _ in range(5)))

    assert sum(o.added for o in outcomes) == 1
    assert len(await repo.snapshot(T0, WINDOW)) == 1


@pytest.mark.asyncio
async def test_insert_in_the_middle_shifts_later_items(repo, pool):
    await _add_participation(pool, "b", T0 - timedelta(hours=1))
    for user in ["a", "b", "c"]:
        await repo.enqueue(_profile(user), T0, WINDOW)

    # "c" has no history, so it passed "b"
    assert await _logins(repo) == ["usera", "userc", "userb"]
    positions = [e.position for e in await repo.snapshot(T0, WINDOW)]
    assert positions == sorted(set(positions))


@pytest.mark.asyncio
async def test_cancel_never_writes_the_ledger(repo):
    a = (await repo.enqueue(_profile("a"), T0, WINDOW)).item
    await repo.enqueue(_profile("b"), T0, WINDOW)

    await repo.cancel(a.id)
    removed = await repo.cancel_by_user("b")

    assert removed is not None and removed.user_id == "b"
    assert await repo.cancel_by_user("b") is None
    assert await repo.participation_count() == 0


@pytest.mark.asyncio
async def test_unknown_ids_raise_not_found(repo):
    with pytest.raises(QueueItemNotFound):
        await repo.complete("missing", T0)
    with pytest.raises(QueueItemNotFound):
        await repo.cancel("missing")
    with pytest.raises(QueueItemNotFound):
        await repo.move_down("missing")


@pytest.mark.asyncio
async def test_moves_swap_neighbours_and_stop_at_edges(repo):
    items = [(await repo.enqueue(_profile(u), T0, WINDOW)).item for u in ["a", "b", "c"]]

    assert await repo.move_up(items[0].id) is False
    assert await repo.move_down(items[2].id) is False

    assert await repo.move_down(items[0].id) is True
    assert await _logins(repo) == ["userb", "usera", "userc"]

    # Gaps left by removals do not matter
    await repo.cancel(items[1].id)
    assert await repo.move_up(items[2].id) is True
    assert await _logins(repo) == ["userc", "usera"]


@pytest.mark.asyncio
async def test_restart_reproduces_snapshot(pool, database_url):
    repo = FairQueueRepository(pool)
    for n, user in enumerate(["p", "q", "r", "p", "q"]):
        await _add_participation(pool, user, T0 - timedelta(minutes=10 + n))
    for user in ["x", "p", "y"]:
        await repo.enqueue(_profile(user), T0, WINDOW)
    before = await repo.snapshot(T0, WINDOW)

    restarted_pool = await _connect(database_url)
    try:
        after = await FairQueueRepository(restarted_pool).snapshot(T0, WINDOW)
    finally:
        await restarted_pool.close()

    assert after == before
    assert [e.login for e in after] == ["userx", "usery", "userp"]


# ============================================
# Other tables
# ============================================


@pytest.mark.asyncio
async def test_processed_message_marks_once_and_prunes(pool):
    repo = ProcessedMessageRepository(pool)

    assert await repo.try_mark("m1", T0) is True
    assert await repo.try_mark("m1", T0) is False
    assert await repo.try_mark("m2", T0 + timedelta(hours=2)) is True

    assert await repo.prune_older_than(T0 + timedelta(hours=1)) == 1
    assert await repo.try_mark("m1", T0) is True


@pytest.mark.asyncio
async def test_credential_singleton_roundtrip(pool):
    repo = CredentialRepository(pool)
    assert await repo.get() is None

    await repo.upsert(Credential("a1", "r1", T0))
    await repo.upsert(Credential("a2", "r2", T0 + timedelta(hours=4)))

    assert await repo.get() == Credential("a2", "r2", T0 + timedelta(hours=4))
    await repo.delete()
    assert await repo.get() is None


@pytest.mark.asyncio
async def test_user_cache_upsert_overwrites(pool):
    repo = UserCacheRepository(pool)
    await repo.upsert(_profile("a", "old"))
    await repo.upsert(_profile("a", "new"))

    cached = await repo.get("a")
    assert cached.login == "new"
    assert cached.updated_at == T0


@pytest.mark.asyncio
async def test_broadcaster_identity_is_stored(pool):
    kv = KeyValueRepository(pool)

    await kv.set_broadcaster("b1", "streamer")

    assert await kv.get_broadcaster() == ("b1", "streamer")
