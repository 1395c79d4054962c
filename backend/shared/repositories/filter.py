"""Repository for the filters table."""

from __future__ import annotations

import logging
import re

import asyncpg

from shared.cache import AsyncTTLCache, cached
from shared.models.channel import Filter

logger = logging.getLogger(__name__)


class FilterRepository:
    """Per-channel response filters."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool
        self._filter_cache = AsyncTTLCache(maxsize=256, ttl=3600)

    @cached("_filter_cache", key_func=lambda self, channel_id: f"filters:{channel_id}")
    async def list_filters(self, channel_id: int) -> list[Filter]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT id, channel_id, regex, block_message, replacement "
                "FROM filters WHERE channel_id = $1 ORDER BY id",
                channel_id,
            )
        filters = []
        for row in rows:
            item = Filter(**dict(row))
            try:
                item.pattern
            except re.error as e:
                logger.warning(f"Skipping invalid filter {item.id} in channel {channel_id}: {e}")
                continue
            filters.append(item)
        return filters

    async def add_filter(
        self,
        channel_id: int,
        regex: str,
        block_message: str | None = None,
        replacement: str | None = None,
    ) -> int:
        re.compile(regex)
        async with self.pool.acquire() as conn:
            filter_id = await conn.fetchval(
                """
                INSERT INTO filters (channel_id, regex, block_message, replacement)
                VALUES ($1, $2, $3, $4) RETURNING id
                """,
                channel_id,
                regex,
                block_message,
                replacement,
            )
        self._filter_cache.invalidate(f"filters:{channel_id}")
        return filter_id

    async def delete_filter(self, channel_id: int, filter_id: int) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM filters WHERE channel_id = $1 AND id = $2",
                channel_id,
                filter_id,
            )
        self._filter_cache.invalidate(f"filters:{channel_id}")
        return result == "DELETE 1"

    def clear_cache(self) -> None:
        self._filter_cache.clear()
