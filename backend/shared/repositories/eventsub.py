"""Repository for the eventsub_triggers table."""

from __future__ import annotations

import asyncpg

from shared.models.eventsub import EventSubTrigger

_COLUMNS = "id, broadcaster_id, event_type, action, subscription_id, created_at"


class EventSubRepository:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def add_trigger(
        self,
        broadcaster_id: str,
        event_type: str,
        action: str,
        subscription_id: str | None,
    ) -> EventSubTrigger:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO eventsub_triggers (broadcaster_id, event_type, action, subscription_id)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (broadcaster_id, event_type) DO UPDATE SET
                    action          = EXCLUDED.action,
                    subscription_id = EXCLUDED.subscription_id
                RETURNING {_COLUMNS}
                """,
                broadcaster_id,
                event_type,
                action,
                subscription_id,
            )
            return EventSubTrigger(**dict(row))

    async def get_trigger(self, broadcaster_id: str, event_type: str) -> EventSubTrigger | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM eventsub_triggers "
                "WHERE broadcaster_id = $1 AND event_type = $2",
                broadcaster_id,
                event_type,
            )
            return EventSubTrigger(**dict(row)) if row else None

    async def list_triggers(self, broadcaster_id: str) -> list[EventSubTrigger]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM eventsub_triggers "
                "WHERE broadcaster_id = $1 ORDER BY event_type",
                broadcaster_id,
            )
            return [EventSubTrigger(**dict(r)) for r in rows]

    async def delete_trigger(self, broadcaster_id: str, event_type: str) -> EventSubTrigger | None:
        """Delete and return the trigger, or None if there was none."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"DELETE FROM eventsub_triggers WHERE broadcaster_id = $1 AND event_type = $2 "
                f"RETURNING {_COLUMNS}",
                broadcaster_id,
                event_type,
            )
            return EventSubTrigger(**dict(row)) if row else None
