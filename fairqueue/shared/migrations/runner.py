"""Schema migration runner with a tracking table."""

from __future__ import annotations

import logging
from pathlib import Path

import asyncpg

logger = logging.getLogger(__name__)

VERSIONS_DIR = Path(__file__).resolve().parent / "versions"

# Arbitrary key for pg_advisory_xact_lock; keeps two starting processes from
# applying the same file twice.
_MIGRATION_LOCK_KEY = 0x66717565


class MigrationRunner:
    """Execute and track schema migrations.

    Migrations are plain SQL files in ``versions/`` named ``NNN_description.sql``.
    Applied versions are recorded in ``schema_migrations`` and never re-applied.
    """

    TRACKING_TABLE = "schema_migrations"

    def __init__(self, pool: asyncpg.Pool, migrations_dir: Path | None = None) -> None:
        self.pool = pool
        self.migrations_dir = migrations_dir or VERSIONS_DIR

    async def ensure_table(self) -> None:
        """Create the tracking table if it does not exist."""
        async with self.pool.acquire() as conn:
            await conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.TRACKING_TABLE} (
                    version    TEXT PRIMARY KEY,
                    name       TEXT NOT NULL,
                    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
                """
            )

    async def get_applied(self) -> set[str]:
        """Return the set of already-applied migration versions."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(f"SELECT version FROM {self.TRACKING_TABLE}")  # noqa: S608
            return {row["version"] for row in rows}

    def pending(self, applied: set[str]) -> list[Path]:
        """SQL files not yet applied, in version order."""
        return [p for p in sorted(self.migrations_dir.glob("*.sql")) if p.stem not in applied]

    async def run_pending(self) -> list[str]:
        """Apply all pending migrations in order. Returns newly applied versions."""
        await self.ensure_table()
        applied = await self.get_applied()

        newly_applied: list[str] = []
        for sql_path in self.pending(applied):
            if await self._apply_one(sql_path):
                newly_applied.append(sql_path.stem)

        if newly_applied:
            logger.info(f"Applied {len(newly_applied)} migration(s): {', '.join(newly_applied)}")
        else:
            logger.info("Database schema is up to date")
        return newly_applied

    async def _apply_one(self, sql_path: Path) -> bool:
        """Execute one migration file inside a transaction.

        Returns False if another process applied it while we waited for the lock.
        """
        version = sql_path.stem
        sql = sql_path.read_text(encoding="utf-8")
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("SELECT pg_advisory_xact_lock($1)", _MIGRATION_LOCK_KEY)
                already = await conn.fetchval(
                    f"SELECT 1 FROM {self.TRACKING_TABLE} WHERE version = $1",  # noqa: S608
                    version,
                )
                if already:
                    logger.debug(f"Migration {version} applied concurrently, skipping")
                    return False

                logger.info(f"Applying migration: {version}")
                await conn.execute(sql)
                await conn.execute(
                    f"INSERT INTO {self.TRACKING_TABLE} (version, name) VALUES ($1, $2)",  # noqa: S608
                    version,
                    sql_path.name,
                )
        return True
