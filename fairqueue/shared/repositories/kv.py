"""Repository for the app_kv table (broadcaster identity and similar)."""

from __future__ import annotations

import logging

import asyncpg

from fairqueue.shared.cache import AsyncTTLCache, cached
from fairqueue.shared.database import translate_store_errors

logger = logging.getLogger(__name__)

BROADCASTER_ID_KEY = "broadcaster_id"
BROADCASTER_LOGIN_KEY = "broadcaster_login"

# Read by every status poll; writes update or forget the cached value.
_kv_cache = AsyncTTLCache(maxsize=32, ttl=300)


class KeyValueRepository:
    """Pure SQL operations for small string settings."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    @cached(cache=_kv_cache, key_func=lambda self, key: f"kv:{key}")
    @translate_store_errors
    async def get(self, key: str) -> str | None:
        async with self.pool.acquire() as conn:
            return await conn.fetchval("SELECT value FROM app_kv WHERE key = $1", key)

    @translate_store_errors
    async def set(self, key: str, value: str) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO app_kv (key, value) VALUES ($1, $2)
                ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value
                """,
                key,
                value,
            )
        _kv_cache.set(f"kv:{key}", value)

    @translate_store_errors
    async def delete(self, key: str) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute("DELETE FROM app_kv WHERE key = $1", key)
        _kv_cache.forget(f"kv:{key}")

    # ==================== Broadcaster identity ====================

    async def get_broadcaster(self) -> tuple[str | None, str | None]:
        """Return ``(broadcaster_id, broadcaster_login)``; either may be None."""
        return await self.get(BROADCASTER_ID_KEY), await self.get(BROADCASTER_LOGIN_KEY)

    async def set_broadcaster(self, broadcaster_id: str, login: str) -> None:
        await self.set(BROADCASTER_ID_KEY, broadcaster_id)
        await self.set(BROADCASTER_LOGIN_KEY, login)

    async def clear_broadcaster(self) -> None:
        await self.delete(BROADCASTER_ID_KEY)
        await self.delete(BROADCASTER_LOGIN_KEY)
