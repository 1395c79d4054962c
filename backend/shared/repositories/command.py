"""Repository for commands and triggers tables."""

from __future__ import annotations

import asyncio
import logging

import asyncpg

from shared.cache import AsyncTTLCache, cached
from shared.models.command import Command, Trigger

logger = logging.getLogger(__name__)

_CMD_COLUMNS = "channel_id, name, action, permissions, cooldown, aliases"


async def _retry_on_db_error(func, max_retries: int = 2):
    """Retry helper for write operations."""
    for attempt in range(1, max_retries + 1):
        try:
            return await func()
        except (asyncpg.InterfaceError, asyncpg.ConnectionDoesNotExistError, OSError) as e:
            if attempt >= max_retries:
                logger.error(f"DB operation failed after {max_retries} attempts: {type(e).__name__}")
                raise
            delay = 0.5 * attempt
            logger.warning(
                f"DB operation attempt {attempt}/{max_retries} failed: {type(e).__name__}, "
                f"retrying in {delay}s..."
            )
            await asyncio.sleep(delay)


def _to_command(row: asyncpg.Record) -> Command:
    data = dict(row)
    data["aliases"] = list(data.get("aliases") or [])
    return Command(**data)


class CommandRepository:
    """SQL operations for custom commands and their trigger phrases."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool
        self._command_cache = AsyncTTLCache(maxsize=1024, ttl=3600)
        self._trigger_cache = AsyncTTLCache(maxsize=256, ttl=3600)

    def _invalidate_channel(self, channel_id: int) -> None:
        prefix = f"cmd:{channel_id}:"
        self._command_cache.invalidate_where(lambda key, _value: key.startswith(prefix))
        self._trigger_cache.invalidate(f"triggers:{channel_id}")

    # ==================== Commands ====================

    @cached("_command_cache", key_func=lambda self, channel_id, name: f"cmd:{channel_id}:{name}")
    async def get_command(self, channel_id: int, name: str) -> Command | None:
        """Find a command by exact name, falling back to its aliases."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_CMD_COLUMNS} FROM commands
                WHERE channel_id = $1 AND (name = $2 OR $2 = ANY(aliases))
                ORDER BY (name = $2) DESC
                LIMIT 1
                """,
                channel_id,
                name,
            )
            return _to_command(row) if row else None

    async def list_commands(self, channel_id: int) -> list[Command]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_CMD_COLUMNS} FROM commands WHERE channel_id = $1 ORDER BY name",
                channel_id,
            )
            return [_to_command(r) for r in rows]

    async def add_command(
        self,
        channel_id: int,
        name: str,
        action: str,
        permissions: int | None = None,
        cooldown: int | None = None,
    ) -> bool:
        """Insert a command. Returns False if the name is already taken."""

        async def _do():
            async with self.pool.acquire() as conn:
                return await conn.execute(
                    """
                    INSERT INTO commands (channel_id, name, action, permissions, cooldown)
                    VALUES ($1, $2, $3, $4, $5)
                    ON CONFLICT (channel_id, name) DO NOTHING
                    """,
                    channel_id,
                    name,
                    action,
                    permissions,
                    cooldown,
                )

        result = await _retry_on_db_error(_do)
        self._invalidate_channel(channel_id)
        return result == "INSERT 0 1"

    async def update_command(self, channel_id: int, name: str, action: str) -> bool:
        async def _do():
            async with self.pool.acquire() as conn:
                return await conn.execute(
                    """
                    UPDATE commands SET action = $3, updated_at = NOW()
                    WHERE channel_id = $1 AND name = $2
                    """,
                    channel_id,
                    name,
                    action,
                )

        result = await _retry_on_db_error(_do)
        self._invalidate_channel(channel_id)
        return result == "UPDATE 1"

    async def delete_command(self, channel_id: int, name: str) -> bool:
        async def _do():
            async with self.pool.acquire() as conn:
                return await conn.execute(
                    "DELETE FROM commands WHERE channel_id = $1 AND name = $2",
                    channel_id,
                    name,
                )

        result = await _retry_on_db_error(_do)
        self._invalidate_channel(channel_id)
        return result == "DELETE 1"

    async def set_aliases(self, channel_id: int, name: str, aliases: list[str]) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "UPDATE commands SET aliases = $3, updated_at = NOW() "
                "WHERE channel_id = $1 AND name = $2",
                channel_id,
                name,
                aliases,
            )
        self._invalidate_channel(channel_id)
        return result == "UPDATE 1"

    # ==================== Triggers ====================

    @cached("_trigger_cache", key_func=lambda self, channel_id: f"triggers:{channel_id}")
    async def get_triggers(self, channel_id: int) -> list[Trigger]:
        """All trigger phrases of a channel."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT channel_id, command_name, phrase FROM triggers WHERE channel_id = $1",
                channel_id,
            )
            return [Trigger(**dict(r)) for r in rows]

    async def set_triggers(self, channel_id: int, command_name: str, phrases: list[str]) -> None:
        """Replace the trigger phrases of one command."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    "DELETE FROM triggers WHERE channel_id = $1 AND command_name = $2",
                    channel_id,
                    command_name,
                )
                await conn.executemany(
                    """
                    INSERT INTO triggers (channel_id, command_name, phrase) VALUES ($1, $2, $3)
                    ON CONFLICT (channel_id, phrase) DO UPDATE SET command_name = EXCLUDED.command_name
                    """,
                    [(channel_id, command_name, phrase) for phrase in phrases],
                )
        self._trigger_cache.invalidate(f"triggers:{channel_id}")

    def clear_cache(self) -> None:
        self._command_cache.clear()
        self._trigger_cache.clear()
