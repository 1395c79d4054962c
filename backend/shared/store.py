"""Store facade: the persistence surface the command engine talks to.

The dispatcher, builtins and template helpers only ever see this object,
so tests can swap in an in-memory double with the same methods.
"""

from __future__ import annotations

import asyncpg

from shared.models.channel import Channel, Filter, Token
from shared.models.command import Command, Trigger
from shared.models.eventsub import EventSubTrigger
from shared.models.identifiers import ChannelIdentifier, UserIdentifier
from shared.models.user import User
from shared.repositories import (
    ChannelRepository,
    CommandRepository,
    EventSubRepository,
    FilterRepository,
    UserRepository,
)


class Store:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool
        self.users = UserRepository(pool)
        self.channels = ChannelRepository(pool)
        self.commands = CommandRepository(pool)
        self.filters = FilterRepository(pool)
        self.eventsub = EventSubRepository(pool)

    # --- users ---

    async def get_or_create_user(self, identifier: UserIdentifier) -> User:
        return await self.users.get_or_create_user(identifier)

    async def merge_users(self, primary: User, secondary: User) -> User:
        return await self.users.merge_users(primary, secondary)

    async def get_user_data(self, user_id: int, key: str) -> str | None:
        return await self.users.get_user_data(user_id, key)

    async def set_user_data(self, user_id: int, key: str, value: str, public: bool = False) -> None:
        await self.users.set_user_data(user_id, key, value, public)

    async def remove_user_data(self, user_id: int, key: str) -> bool:
        return await self.users.remove_user_data(user_id, key)

    # --- channels ---

    async def get_or_create_channel(self, identifier: ChannelIdentifier) -> Channel:
        return await self.channels.get_or_create_channel(identifier)

    async def list_channels(self, platform: str) -> list[Channel]:
        return await self.channels.list_channels(platform)

    async def get_prefix(self, channel_id: int) -> str | None:
        return await self.channels.get_prefix(channel_id)

    async def set_prefix(self, channel_id: int, prefix: str | None) -> None:
        await self.channels.set_prefix(channel_id, prefix)

    async def get_channel_data(self, channel_id: int, key: str) -> str | None:
        return await self.channels.get_channel_data(channel_id, key)

    async def set_channel_data(self, channel_id: int, key: str, value: str) -> None:
        await self.channels.set_channel_data(channel_id, key, value)

    async def remove_channel_data(self, channel_id: int, key: str) -> bool:
        return await self.channels.remove_channel_data(channel_id, key)

    async def get_mirror_targets(self, channel_id: int) -> list[Channel]:
        return await self.channels.get_mirror_targets(channel_id)

    async def add_mirror(self, from_channel_id: int, to_channel_id: int) -> bool:
        return await self.channels.add_mirror(from_channel_id, to_channel_id)

    async def remove_mirror(self, from_channel_id: int, to_channel_id: int) -> bool:
        return await self.channels.remove_mirror(from_channel_id, to_channel_id)

    async def get_token(self, user_id: str) -> Token | None:
        return await self.channels.get_token(user_id)

    async def upsert_token(self, user_id: str, token: str, refresh: str) -> None:
        await self.channels.upsert_token(user_id, token, refresh)

    async def get_filters(self, channel_id: int) -> list[Filter]:
        return await self.filters.list_filters(channel_id)

    async def add_filter(
        self,
        channel_id: int,
        regex: str,
        block_message: str | None = None,
        replacement: str | None = None,
    ) -> int:
        return await self.filters.add_filter(channel_id, regex, block_message, replacement)

    async def delete_filter(self, channel_id: int, filter_id: int) -> bool:
        return await self.filters.delete_filter(channel_id, filter_id)

    # --- commands ---

    async def get_command(self, channel_id: int, name: str) -> Command | None:
        return await self.commands.get_command(channel_id, name)

    async def list_commands(self, channel_id: int) -> list[Command]:
        return await self.commands.list_commands(channel_id)

    async def add_command(
        self,
        channel_id: int,
        name: str,
        action: str,
        permissions: int | None = None,
        cooldown: int | None = None,
    ) -> bool:
        return await self.commands.add_command(channel_id, name, action, permissions, cooldown)

    async def update_command(self, channel_id: int, name: str, action: str) -> bool:
        return await self.commands.update_command(channel_id, name, action)

    async def delete_command(self, channel_id: int, name: str) -> bool:
        return await self.commands.delete_command(channel_id, name)

    async def set_command_aliases(self, channel_id: int, name: str, aliases: list[str]) -> bool:
        return await self.commands.set_aliases(channel_id, name, aliases)

    async def get_triggers(self, channel_id: int) -> list[Trigger]:
        return await self.commands.get_triggers(channel_id)

    async def set_command_triggers(self, channel_id: int, name: str, phrases: list[str]) -> None:
        await self.commands.set_triggers(channel_id, name, phrases)

    # --- eventsub ---

    async def add_eventsub_trigger(
        self, broadcaster_id: str, event_type: str, action: str, subscription_id: str | None
    ) -> EventSubTrigger:
        return await self.eventsub.add_trigger(broadcaster_id, event_type, action, subscription_id)

    async def get_eventsub_trigger(self, broadcaster_id: str, event_type: str) -> EventSubTrigger | None:
        return await self.eventsub.get_trigger(broadcaster_id, event_type)

    async def list_eventsub_triggers(self, broadcaster_id: str) -> list[EventSubTrigger]:
        return await self.eventsub.list_triggers(broadcaster_id)

    async def delete_eventsub_trigger(self, broadcaster_id: str, event_type: str) -> EventSubTrigger | None:
        return await self.eventsub.delete_trigger(broadcaster_id, event_type)

    def clear_caches(self) -> None:
        self.users.clear_cache()
        self.channels.clear_cache()
        self.commands.clear_cache()
        self.filters.clear_cache()
