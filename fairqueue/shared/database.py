"""PostgreSQL connection management for the queue store.

Every durable table lives in one database. Mutations serialize through
transactions on this pool; there is no in-process locking around the store.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, ParamSpec, TypeVar

import asyncpg

from fairqueue.core.errors import StoreError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

# Failures that mean "the store is unavailable or rejected the statement".
STORE_EXCEPTIONS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    TimeoutError,
)


def translate_store_errors(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    """Re-raise storage driver failures from *func* as ``StoreError``.

    asyncpg rolls back the surrounding transaction before the exception
    leaves ``conn.transaction()``, so nothing is partially applied.
    """

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await func(*args, **kwargs)
        except STORE_EXCEPTIONS as e:
            logger.error(f"Store operation {func.__qualname__} failed: {type(e).__name__}: {e}")
            raise StoreError(f"{func.__name__} failed: {type(e).__name__}") from e

    return wrapper


@dataclass
class PoolConfig:
    """Database pool configuration with sensible defaults."""

    min_size: int = 1
    max_size: int = 5
    timeout: float = 5.0
    command_timeout: float = 15.0
    max_inactive_connection_lifetime: float = 300.0
    max_retries: int = 3
    retry_delay: float = 2.0
    ssl: str = "prefer"


class DatabaseManager:
    """Manages PostgreSQL connection pool lifecycle."""

    def __init__(self, database_url: str, config: PoolConfig | None = None):
        self.database_url = database_url
        self.config = config or PoolConfig()
        self._pool: asyncpg.Pool | None = None

    def _pool_kwargs(self) -> dict[str, Any]:
        cfg = self.config
        return {
            "dsn": self.database_url,
            "min_size": cfg.min_size,
            "max_size": cfg.max_size,
            "timeout": cfg.timeout,
            "command_timeout": cfg.command_timeout,
            "ssl": cfg.ssl,
            "max_inactive_connection_lifetime": cfg.max_inactive_connection_lifetime,
        }

    async def connect(self) -> None:
        """Initialize database connection pool with retry."""
        if self._pool is not None:
            logger.warning("Database pool already initialized")
            return

        cfg = self.config
        for attempt in range(1, cfg.max_retries + 1):
            try:
                self._pool = await asyncpg.create_pool(**self._pool_kwargs())

                # Verify pool is usable
                async with self._pool.acquire() as conn:
                    await conn.fetchval("SELECT 1")

                logger.info(f"Database pool created and verified (size={cfg.min_size}-{cfg.max_size})")
                return
            except Exception as e:
                if self._pool is not None:
                    try:
                        await self._pool.close()
                    except Exception as close_error:
                        logger.debug(f"Ignoring error while closing failed pool: {close_error}")
                    self._pool = None

                if attempt < cfg.max_retries:
                    delay = cfg.retry_delay * (2 ** (attempt - 1))
                    logger.warning(
                        f"Database connection attempt {attempt}/{cfg.max_retries} failed: "
                        f"{type(e).__name__}: {e or repr(e)}, retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.exception(
                        f"Database connection failed after {cfg.max_retries} attempts: "
                        f"{type(e).__name__}: {e or repr(e)}"
                    )
                    raise

    async def disconnect(self) -> None:
        """Close database connection pool.

        ``Pool.close`` waits for acquired connections to be released, so
        in-flight transactions either commit or roll back first.
        """
        if self._pool is None:
            return

        try:
            await self._pool.close()
            self._pool = None
            logger.info("Database pool closed")
        except Exception as e:
            logger.exception(f"Error closing database pool: {e}")

    async def check_health(self) -> bool:
        """Test if pool can actually execute a query."""
        if self._pool is None:
            return False
        try:
            async with self._pool.acquire(timeout=2.0) as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception:
            return False

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the database connection pool. Raises if not initialized."""
        if self._pool is None:
            raise RuntimeError("Database pool not initialized. Call connect() first.")
        return self._pool
