"""Repository for the queue_items and participations tables.

Every mutation runs in one transaction that first takes
``SHARE ROW EXCLUSIVE`` on ``queue_items``: writers serialize against each
other while snapshot readers keep reading the last committed state.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

import asyncpg

from fairqueue.core.errors import QueueItemNotFound
from fairqueue.shared.database import translate_store_errors
from fairqueue.shared.fairness import fair_insert_index, window_start
from fairqueue.shared.models.queue import EnqueueOutcome, QueueItem, QueueSnapshotEntry
from fairqueue.shared.models.user_cache import UserProfile

logger = logging.getLogger(__name__)

_ITEM_COLUMNS = "id, user_id, login, display_name, avatar_url, enqueued_at, position"

# $1 is the window start; NULL (fairness disabled) makes every count 0.
_RECENT_COUNT = (
    "(SELECT COUNT(*) FROM participations p "
    "WHERE p.user_id = q.user_id AND p.completed_at >= $1::timestamptz)"
)

_LOCK_QUEUE = "LOCK TABLE queue_items IN SHARE ROW EXCLUSIVE MODE"


class FairQueueRepository:
    """Pure SQL operations for the fair queue and its completion ledger."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    # ==================== Reads ====================

    @translate_store_errors
    async def snapshot(self, now: datetime, window_secs: int) -> list[QueueSnapshotEntry]:
        """All active items in position order, each with its recent count."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_ITEM_COLUMNS}, {_RECENT_COUNT} AS recent_participation_count "
                "FROM queue_items q ORDER BY q.position ASC",
                window_start(now, window_secs),
            )
            return [QueueSnapshotEntry(**dict(row)) for row in rows]

    @translate_store_errors
    async def find_by_user(self, user_id: str) -> QueueItem | None:
        """Find the active item for a user."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_ITEM_COLUMNS} FROM queue_items WHERE user_id = $1", user_id
            )
            return QueueItem(**dict(row)) if row else None

    async def is_user_queued(self, user_id: str) -> bool:
        return await self.find_by_user(user_id) is not None

    @translate_store_errors
    async def recent_count(self, user_id: str, now: datetime, window_secs: int) -> int:
        """Completions for *user_id* inside the fairness window."""
        start = window_start(now, window_secs)
        if start is None:
            return 0
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                "SELECT COUNT(*) FROM participations WHERE user_id = $1 AND completed_at >= $2",
                user_id,
                start,
            )

    @translate_store_errors
    async def participation_count(self, user_id: str | None = None) -> int:
        """Total ledger rows, optionally for one user (no window)."""
        async with self.pool.acquire() as conn:
            if user_id is None:
                return await conn.fetchval("SELECT COUNT(*) FROM participations")
            return await conn.fetchval(
                "SELECT COUNT(*) FROM participations WHERE user_id = $1", user_id
            )

    # ==================== Mutations ====================

    @translate_store_errors
    async def enqueue(
        self, profile: UserProfile, now: datetime, window_secs: int
    ) -> EnqueueOutcome:
        """Insert *profile* at its fairness position, or return the existing item."""
        start = window_start(now, window_secs)
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(_LOCK_QUEUE)

                existing = await conn.fetchrow(
                    f"SELECT {_ITEM_COLUMNS} FROM queue_items WHERE user_id = $1",
                    profile.user_id,
                )
                if existing:
                    return EnqueueOutcome(added=False, item=QueueItem(**dict(existing)))

                current = await conn.fetch(
                    f"SELECT q.position, {_RECENT_COUNT} AS c "
                    "FROM queue_items q ORDER BY q.position ASC",
                    start,
                )
                my_count = 0
                if start is not None:
                    my_count = await conn.fetchval(
                        "SELECT COUNT(*) FROM participations "
                        "WHERE user_id = $1 AND completed_at >= $2",
                        profile.user_id,
                        start,
                    )

                idx = fair_insert_index([r["c"] for r in current], my_count)
                if idx < len(current):
                    position = current[idx]["position"]
                    await conn.execute(
                        "UPDATE queue_items SET position = position + 1 WHERE position >= $1",
                        position,
                    )
                else:
                    position = current[-1]["position"] + 1 if current else 0

                item = QueueItem(
                    id=str(uuid.uuid4()),
                    user_id=profile.user_id,
                    login=profile.login,
                    display_name=profile.display_name,
                    avatar_url=profile.avatar_url,
                    enqueued_at=now,
                    position=position,
                )
                await conn.execute(
                    f"INSERT INTO queue_items ({_ITEM_COLUMNS}) "
                    "VALUES ($1, $2, $3, $4, $5, $6, $7)",
                    item.id,
                    item.user_id,
                    item.login,
                    item.display_name,
                    item.avatar_url,
                    item.enqueued_at,
                    item.position,
                )

        logger.debug(f"Enqueued {item.login} at index {idx} (recent={my_count})")
        return EnqueueOutcome(added=True, item=item)

    @translate_store_errors
    async def complete(self, item_id: str, now: datetime) -> QueueItem:
        """Remove an item and record one participation for its user."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(_LOCK_QUEUE)
                row = await conn.fetchrow(
                    f"DELETE FROM queue_items WHERE id = $1 RETURNING {_ITEM_COLUMNS}", item_id
                )
                if not row:
                    raise QueueItemNotFound(item_id)
                await conn.execute(
                    "INSERT INTO participations (user_id, completed_at) VALUES ($1, $2)",
                    row["user_id"],
                    now,
                )
                return QueueItem(**dict(row))

    @translate_store_errors
    async def cancel(self, item_id: str) -> QueueItem:
        """Remove an item without touching the ledger."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(_LOCK_QUEUE)
                row = await conn.fetchrow(
                    f"DELETE FROM queue_items WHERE id = $1 RETURNING {_ITEM_COLUMNS}", item_id
                )
                if not row:
                    raise QueueItemNotFound(item_id)
                return QueueItem(**dict(row))

    @translate_store_errors
    async def cancel_by_user(self, user_id: str) -> QueueItem | None:
        """Remove the active item of *user_id*, if any, without touching the ledger."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(_LOCK_QUEUE)
                row = await conn.fetchrow(
                    f"DELETE FROM queue_items WHERE user_id = $1 RETURNING {_ITEM_COLUMNS}",
                    user_id,
                )
                return QueueItem(**dict(row)) if row else None

    async def move_up(self, item_id: str) -> bool:
        return await self._swap_with_neighbour(item_id, upward=True)

    async def move_down(self, item_id: str) -> bool:
        return await self._swap_with_neighbour(item_id, upward=False)

    @translate_store_errors
    async def _swap_with_neighbour(self, item_id: str, *, upward: bool) -> bool:
        """Swap positions with the adjacent item. Returns False at the boundary."""
        if upward:
            neighbour_sql = (
                "SELECT id, position FROM queue_items "
                "WHERE position < $1 ORDER BY position DESC LIMIT 1"
            )
        else:
            neighbour_sql = (
                "SELECT id, position FROM queue_items "
                "WHERE position > $1 ORDER BY position ASC LIMIT 1"
            )

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(_LOCK_QUEUE)
                item = await conn.fetchrow(
                    "SELECT id, position FROM queue_items WHERE id = $1", item_id
                )
                if not item:
                    raise QueueItemNotFound(item_id)

                neighbour = await conn.fetchrow(neighbour_sql, item["position"])
                if not neighbour:
                    return False

                await conn.execute(
                    "UPDATE queue_items SET position = $2 WHERE id = $1",
                    item["id"],
                    neighbour["position"],
                )
                await conn.execute(
                    "UPDATE queue_items SET position = $2 WHERE id = $1",
                    neighbour["id"],
                    item["position"],
                )
                return True
