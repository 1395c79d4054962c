"""Repository for users and user_data tables."""

from __future__ import annotations

import logging

import asyncpg

from shared.cache import AsyncTTLCache, cached
from shared.models.identifiers import USER_COLUMNS, UserIdentifier
from shared.models.user import User

logger = logging.getLogger(__name__)

_USER_COLUMNS = "id, twitch_id, discord_id, irc_name, local_addr, telegram_id"


class UserRepository:
    """SQL operations for users / user_data.

    Users are cached twice: by internal id and by every platform identity
    that resolved to them. Both caches belong to this instance.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool
        self._user_cache = AsyncTTLCache(maxsize=1024, ttl=3600)
        self._identifier_cache = AsyncTTLCache(maxsize=2048, ttl=3600)

    # ==================== Users ====================

    @cached("_identifier_cache", key_func=lambda self, identifier: f"ident:{identifier}")
    async def get_or_create_user(self, identifier: UserIdentifier) -> User:
        """Resolve a platform identity to a user, inserting it on first contact."""
        column = identifier.column
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_USER_COLUMNS} FROM users WHERE {column} = $1",
                identifier.id,
            )
            if row is None:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO users ({column}) VALUES ($1)
                    ON CONFLICT ({column}) DO UPDATE SET {column} = EXCLUDED.{column}
                    RETURNING {_USER_COLUMNS}
                    """,
                    identifier.id,
                )
                logger.info(f"Created user {row['id']} for {identifier}")
        user = User(**dict(row))
        self._user_cache.set(f"user:{user.id}", user)
        return user

    @cached("_user_cache", key_func=lambda self, user_id: f"user:{user_id}")
    async def get_user(self, user_id: int) -> User | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1", user_id)
            return User(**dict(row)) if row else None

    async def merge_users(self, primary: User, secondary: User) -> User:
        """Fold *secondary* into *primary* and delete it.

        Runs as one transaction, in this order: copy user_data (secondary
        values win on key clashes), delete the secondary row so its platform
        ids are free, then write the union of ids onto the primary.
        """
        if primary.id == secondary.id:
            raise ValueError("cannot merge a user with itself")

        merged = primary.merged_with(secondary)
        columns = list(USER_COLUMNS.values())
        assignments = ", ".join(f"{col} = ${i}" for i, col in enumerate(columns, start=2))

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    """
                    INSERT INTO user_data (user_id, name, value, public)
                    SELECT $1, name, value, public FROM user_data WHERE user_id = $2
                    ON CONFLICT (user_id, name) DO UPDATE SET
                        value  = EXCLUDED.value,
                        public = EXCLUDED.public
                    """,
                    primary.id,
                    secondary.id,
                )
                await conn.execute("DELETE FROM users WHERE id = $1", secondary.id)
                await conn.execute(
                    f"UPDATE users SET {assignments} WHERE id = $1",
                    primary.id,
                    *(getattr(merged, col) for col in columns),
                )

        self._invalidate_users(primary, secondary)
        logger.info(f"Merged user {secondary.id} into {primary.id}")
        return merged

    def _invalidate_users(self, *users: User) -> None:
        ids = {u.id for u in users}
        for user in users:
            self._user_cache.invalidate(f"user:{user.id}")
            for identifier in user.identifiers():
                self._identifier_cache.invalidate(f"ident:{identifier}")
        # identities resolved before a link was added are not listed on the model
        self._identifier_cache.invalidate_where(lambda _key, value: getattr(value, "id", None) in ids)

    # ==================== User data ====================

    async def get_user_data(self, user_id: int, name: str) -> str | None:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                "SELECT value FROM user_data WHERE user_id = $1 AND name = $2",
                user_id,
                name,
            )

    async def set_user_data(self, user_id: int, name: str, value: str, public: bool = False) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO user_data (user_id, name, value, public)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (user_id, name) DO UPDATE SET
                    value  = EXCLUDED.value,
                    public = EXCLUDED.public
                """,
                user_id,
                name,
                value,
                public,
            )

    async def remove_user_data(self, user_id: int, name: str) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM user_data WHERE user_id = $1 AND name = $2",
                user_id,
                name,
            )
            return result == "DELETE 1"

    def clear_cache(self) -> None:
        self._user_cache.clear()
        self._identifier_cache.clear()
