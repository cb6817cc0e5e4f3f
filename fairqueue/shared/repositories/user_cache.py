"""Repository for the user_cache table."""

from __future__ import annotations

import asyncpg

from fairqueue.shared.database import translate_store_errors
from fairqueue.shared.models.user_cache import UserProfile


class UserCacheRepository:
    """Pure SQL operations for cached Twitch profiles."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    @translate_store_errors
    async def get(self, user_id: str) -> UserProfile | None:
        """Cached profile regardless of age; the caller judges freshness."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT user_id, login, display_name, avatar_url, updated_at "
                "FROM user_cache WHERE user_id = $1",
                user_id,
            )
            return UserProfile(**dict(row)) if row else None

    @translate_store_errors
    async def upsert(self, profile: UserProfile) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO user_cache (user_id, login, display_name, avatar_url, updated_at)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (user_id) DO UPDATE SET
                    login        = EXCLUDED.login,
                    display_name = EXCLUDED.display_name,
                    avatar_url   = EXCLUDED.avatar_url,
                    updated_at   = EXCLUDED.updated_at
                """,
                profile.user_id,
                profile.login,
                profile.display_name,
                profile.avatar_url,
                profile.updated_at,
            )
