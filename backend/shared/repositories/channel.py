"""Repository for channels, prefixes, channel_data, mirror_connections and tokens tables."""

from __future__ import annotations

import logging

import asyncpg

from shared.cache import AsyncTTLCache, cached
from shared.models.channel import Channel, Token
from shared.models.identifiers import ChannelIdentifier

logger = logging.getLogger(__name__)


class ChannelRepository:
    """SQL operations for channels and everything keyed by a channel."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool
        self._channel_cache = AsyncTTLCache(maxsize=512, ttl=3600)
        self._prefix_cache = AsyncTTLCache(maxsize=512, ttl=3600)
        self._token_cache = AsyncTTLCache(maxsize=64, ttl=3600)
        self._mirror_cache = AsyncTTLCache(maxsize=512, ttl=3600)

    # ==================== Channels ====================

    @cached(
        "_channel_cache",
        key_func=lambda self, identifier: f"channel:{identifier.to_canonical_string()}",
    )
    async def get_or_create_channel(self, identifier: ChannelIdentifier) -> Channel:
        platform = identifier.platform.value
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT id, platform, channel FROM channels WHERE platform = $1 AND channel = $2",
                platform,
                identifier.id,
            )
            if row is None:
                row = await conn.fetchrow(
                    """
                    INSERT INTO channels (platform, channel) VALUES ($1, $2)
                    ON CONFLICT (platform, channel) DO UPDATE SET channel = EXCLUDED.channel
                    RETURNING id, platform, channel
                    """,
                    platform,
                    identifier.id,
                )
                logger.info(f"Registered channel {identifier} as {row['id']}")
            return Channel(**dict(row))

    async def get_channel(self, channel_id: int) -> Channel | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT id, platform, channel FROM channels WHERE id = $1", channel_id
            )
            return Channel(**dict(row)) if row else None

    async def list_channels(self, platform: str) -> list[Channel]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT id, platform, channel FROM channels WHERE platform = $1 ORDER BY id",
                platform,
            )
            return [Channel(**dict(r)) for r in rows]

    # ==================== Mirrors ====================

    @cached("_mirror_cache", key_func=lambda self, channel_id: f"mirror:{channel_id}")
    async def get_mirror_targets(self, channel_id: int) -> list[Channel]:
        """Channels that receive a copy of every message sent in *channel_id*."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT c.id, c.platform, c.channel
                FROM mirror_connections m JOIN channels c ON c.id = m.to_channel_id
                WHERE m.from_channel_id = $1 ORDER BY c.id
                """,
                channel_id,
            )
            return [Channel(**dict(r)) for r in rows]

    async def add_mirror(self, from_channel_id: int, to_channel_id: int) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "INSERT INTO mirror_connections (from_channel_id, to_channel_id) VALUES ($1, $2) "
                "ON CONFLICT DO NOTHING",
                from_channel_id,
                to_channel_id,
            )
        self._mirror_cache.invalidate(f"mirror:{from_channel_id}")
        return result == "INSERT 0 1"

    async def remove_mirror(self, from_channel_id: int, to_channel_id: int) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM mirror_connections WHERE from_channel_id = $1 AND to_channel_id = $2",
                from_channel_id,
                to_channel_id,
            )
        self._mirror_cache.invalidate(f"mirror:{from_channel_id}")
        return result == "DELETE 1"

    # ==================== Prefixes ====================

    @cached("_prefix_cache", key_func=lambda self, channel_id: f"prefix:{channel_id}")
    async def get_prefix(self, channel_id: int) -> str | None:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                "SELECT prefix FROM prefixes WHERE channel_id = $1", channel_id
            )

    async def set_prefix(self, channel_id: int, prefix: str | None) -> None:
        async with self.pool.acquire() as conn:
            if prefix:
                await conn.execute(
                    """
                    INSERT INTO prefixes (channel_id, prefix) VALUES ($1, $2)
                    ON CONFLICT (channel_id) DO UPDATE SET prefix = EXCLUDED.prefix
                    """,
                    channel_id,
                    prefix,
                )
            else:
                await conn.execute("DELETE FROM prefixes WHERE channel_id = $1", channel_id)
        self._prefix_cache.invalidate(f"prefix:{channel_id}")

    # ==================== Channel data ====================

    async def get_channel_data(self, channel_id: int, name: str) -> str | None:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                "SELECT value FROM channel_data WHERE channel_id = $1 AND name = $2",
                channel_id,
                name,
            )

    async def set_channel_data(self, channel_id: int, name: str, value: str) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO channel_data (channel_id, name, value) VALUES ($1, $2, $3)
                ON CONFLICT (channel_id, name) DO UPDATE SET value = EXCLUDED.value
                """,
                channel_id,
                name,
                value,
            )

    async def remove_channel_data(self, channel_id: int, name: str) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM channel_data WHERE channel_id = $1 AND name = $2",
                channel_id,
                name,
            )
            return result == "DELETE 1"

    # ==================== Tokens ====================

    @cached("_token_cache", key_func=lambda self, user_id: f"token:{user_id}")
    async def get_token(self, user_id: str) -> Token | None:
        """Get a broadcaster's OAuth token."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT user_id, token, refresh, created_at, updated_at "
                "FROM tokens WHERE user_id = $1",
                user_id,
            )
            return Token(**dict(row)) if row else None

    async def upsert_token(self, user_id: str, token: str, refresh: str) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO tokens (user_id, token, refresh)
                VALUES ($1, $2, $3)
                ON CONFLICT (user_id) DO UPDATE SET
                    token      = EXCLUDED.token,
                    refresh    = EXCLUDED.refresh,
                    updated_at = NOW()
                """,
                user_id,
                token,
                refresh,
            )
        self._token_cache.invalidate(f"token:{user_id}")

    def clear_cache(self) -> None:
        self._channel_cache.clear()
        self._prefix_cache.clear()
        self._token_cache.clear()
        self._mirror_cache.clear()
