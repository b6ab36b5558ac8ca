"""Schema migrations applied at API startup.

Migrations are plain SQL files in ``versions/`` named ``NNN_description.sql``.
Each file runs once, inside a transaction, and is recorded in the
``schema_migrations`` table.
"""

from __future__ import annotations

import logging
from pathlib import Path

import asyncpg

logger = logging.getLogger(__name__)

VERSIONS_DIR = Path(__file__).resolve().parent / "versions"


class MigrationRunner:
    TRACKING_TABLE = "schema_migrations"

    def __init__(self, pool: asyncpg.Pool, versions_dir: Path | None = None) -> None:
        self.pool = pool
        self.versions_dir = versions_dir or VERSIONS_DIR

    def discover(self) -> list[Path]:
        """SQL files in version order."""
        return sorted(self.versions_dir.glob("*.sql"))

    async def applied_versions(self) -> set[str]:
        async with self.pool.acquire() as conn:
            await conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.TRACKING_TABLE} (
                    version    TEXT PRIMARY KEY,
                    name       TEXT NOT NULL,
                    applied_at TIMESTAMPTZ DEFAULT NOW()
                )
                """
            )
            rows = await conn.fetch(f"SELECT version FROM {self.TRACKING_TABLE}")  # noqa: S608
            return {row["version"] for row in rows}

    async def run_pending(self) -> list[str]:
        """Apply every migration not yet recorded. Returns the versions applied."""
        applied = await self.applied_versions()
        pending = [path for path in self.discover() if path.stem not in applied]
        if not pending:
            logger.info("Database schema is up to date")
            return []

        for path in pending:
            logger.info("Applying migration %s", path.stem)
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(path.read_text(encoding="utf-8"))
                    await conn.execute(
                        f"INSERT INTO {self.TRACKING_TABLE} (version, name) VALUES ($1, $2)",
                        path.stem,
                        path.name,
                    )

        versions = [path.stem for path in pending]
        logger.info("Applied %d migration(s): %s", len(versions), ", ".join(versions))
        return versions
