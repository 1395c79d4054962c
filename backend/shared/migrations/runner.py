"""Schema migrations for the chorus database.

Files in ``versions/`` are named ``NNN_description.sql``. Each one is
applied once, in version order, inside its own transaction. The whole run
holds a Postgres advisory lock, so two bot processes starting together
never apply the same file twice. The checksum of every applied file is
recorded; a file edited after it was applied is reported, never re-run.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from pathlib import Path

import asyncpg

logger = logging.getLogger(__name__)

VERSIONS_DIR = Path(__file__).resolve().parent / "versions"

# pg_advisory_lock key for migration runs
LOCK_KEY = 0x63686F72

_FILE_NAME = re.compile(r"^(\d{3})_(\w+)\.sql$")


class MigrationError(Exception):
    pass


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    sql: str

    @property
    def label(self) -> str:
        return f"{self.version:03d}_{self.name}"

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.sql.encode("utf-8")).hexdigest()


def discover(directory: Path = VERSIONS_DIR) -> list[Migration]:
    """Load every migration file in *directory*, ordered by version."""
    found: dict[int, Migration] = {}
    for path in directory.glob("*.sql"):
        match = _FILE_NAME.match(path.name)
        if match is None:
            raise MigrationError(f"unexpected migration file name: {path.name}")
        version = int(match.group(1))
        if version in found:
            raise MigrationError(f"duplicate migration version {version:03d}: {path.name}")
        found[version] = Migration(version, match.group(2), path.read_text(encoding="utf-8"))
    return [found[v] for v in sorted(found)]


class MigrationRunner:
    def __init__(self, pool: asyncpg.Pool, directory: Path = VERSIONS_DIR) -> None:
        self.pool = pool
        self.directory = directory

    async def run_pending(self) -> list[int]:
        """Apply every migration not yet recorded; return their versions."""
        migrations = discover(self.directory)
        applied_now: list[int] = []

        async with self.pool.acquire() as conn:
            await conn.execute("SELECT pg_advisory_lock($1)", LOCK_KEY)
            try:
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS schema_migrations (
                        version    INTEGER PRIMARY KEY,
                        name       TEXT NOT NULL,
                        checksum   TEXT NOT NULL,
                        applied_at TIMESTAMPTZ DEFAULT NOW()
                    )
                    """
                )
                rows = await conn.fetch("SELECT version, checksum FROM schema_migrations")
                applied = {row["version"]: row["checksum"] for row in rows}

                for migration in migrations:
                    if migration.version in applied:
                        if applied[migration.version] != migration.checksum:
                            logger.warning(f"Migration {migration.label} was edited after it was applied")
                        continue
                    await self._apply(conn, migration)
                    applied_now.append(migration.version)
            finally:
                await conn.execute("SELECT pg_advisory_unlock($1)", LOCK_KEY)

        if applied_now:
            logger.info(f"Applied {len(applied_now)} migration(s), schema is at {migrations[-1].label}")
        else:
            logger.info("Database schema is up to date")
        return applied_now

    async def _apply(self, conn: asyncpg.Connection, migration: Migration) -> None:
        logger.info(f"Applying migration {migration.label}")
        async with conn.transaction():
            await conn.execute(migration.sql)
            await conn.execute(
                "INSERT INTO schema_migrations (version, name, checksum) VALUES ($1, $2, $3)",
                migration.version,
                migration.name,
                migration.checksum,
            )
