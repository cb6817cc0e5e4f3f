"""Repository for the oauth_credentials table (a single row)."""

from __future__ import annotations

import logging

import asyncpg

from fairqueue.shared.database import translate_store_errors
from fairqueue.shared.models.credential import Credential

logger = logging.getLogger(__name__)


class CredentialRepository:
    """Pure SQL operations for the broadcaster's token pair."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    @translate_store_errors
    async def get(self) -> Credential | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT access_token, refresh_token, expires_at FROM oauth_credentials WHERE id = 1"
            )
            if not row:
                return None
            return Credential(**dict(row))

    @translate_store_errors
    async def upsert(self, credential: Credential) -> None:
        """Replace the stored credential."""
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO oauth_credentials (id, access_token, refresh_token, expires_at)
                VALUES (1, $1, $2, $3)
                ON CONFLICT (id) DO UPDATE SET
                    access_token  = EXCLUDED.access_token,
                    refresh_token = EXCLUDED.refresh_token,
                    expires_at    = EXCLUDED.expires_at,
                    updated_at    = NOW()
                """,
                credential.access_token,
                credential.refresh_token,
                credential.expires_at,
            )

    @translate_store_errors
    async def delete(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute("DELETE FROM oauth_credentials WHERE id = 1")
