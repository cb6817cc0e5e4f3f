"""Repository for the processed_messages table (EventSub dedup markers)."""

from __future__ import annotations

from datetime import datetime

import asyncpg

from fairqueue.shared.database import translate_store_errors


class ProcessedMessageRepository:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    @translate_store_errors
    async def try_mark(self, message_id: str, now: datetime) -> bool:
        """Record *message_id*. Returns False if it was already recorded."""
        async with self.pool.acquire() as conn:
            status = await conn.execute(
                """
                INSERT INTO processed_messages (message_id, received_at)
                VALUES ($1, $2)
                ON CONFLICT (message_id) DO NOTHING
                """,
                message_id,
                now,
            )
        # asyncpg status tag: "INSERT 0 <rows>"
        return status.endswith(" 1")

    @translate_store_errors
    async def prune_older_than(self, cutoff: datetime) -> int:
        """Delete markers received before *cutoff*. Returns rows removed."""
        async with self.pool.acquire() as conn:
            status = await conn.execute(
                "DELETE FROM processed_messages WHERE received_at < $1", cutoff
            )
        return int(status.split()[-1])
