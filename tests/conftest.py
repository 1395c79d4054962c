"""Shared fakes: an in-memory store, a scripted execution context and a
recording asyncpg pool. Nothing here touches the network or a database."""

from __future__ import annotations

import itertools
import re
from contextlib import asynccontextmanager
from typing import Any

import pytest

from chorus.core.context import ExecutionContext
from chorus.core.permissions import Permission, PermissionResolver
from shared.models.channel import Channel, Filter, Token
from shared.models.command import Command, Trigger
from shared.models.eventsub import EventSubTrigger
from shared.models.identifiers import (
    ChannelIdentifier,
    ChannelPlatform,
    UserIdentifier,
    UserPlatform,
)
from shared.models.user import User


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class FakeStore:
    """Dict-backed stand-in for :class:`shared.store.Store`."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.users: dict[UserIdentifier, User] = {}
        self.channels: dict[ChannelIdentifier, Channel] = {}
        self.prefixes: dict[int, str] = {}
        self.user_data: dict[tuple[int, str], str] = {}
        self.channel_data: dict[tuple[int, str], str] = {}
        self.commands: dict[tuple[int, str], Command] = {}
        self.triggers: list[Trigger] = []
        self.filters: list[Filter] = []
        self.eventsub: dict[tuple[str, str], EventSubTrigger] = {}
        self.tokens: dict[str, Token] = {}
        self.mirrors: dict[int, list[Channel]] = {}

    async def get_or_create_user(self, identifier: UserIdentifier) -> User:
        if identifier not in self.users:
            user = User(id=next(self._ids))
            setattr(user, identifier.column, identifier.id)
            self.users[identifier] = user
        return self.users[identifier]

    async def merge_users(self, primary: User, secondary: User) -> User:
        for identifier, user in list(self.users.items()):
            if user is secondary:
                setattr(primary, identifier.column, identifier.id)
                self.users[identifier] = primary
        for (user_id, key), value in list(self.user_data.items()):
            if user_id == secondary.id:
                self.user_data.setdefault((primary.id, key), value)
                del self.user_data[(user_id, key)]
        return primary

    async def get_user_data(self, user_id: int, key: str) -> str | None:
        return self.user_data.get((user_id, key))

    async def set_user_data(self, user_id: int, key: str, value: str, public: bool = False) -> None:
        self.user_data[(user_id, key)] = value

    async def remove_user_data(self, user_id: int, key: str) -> bool:
        return self.user_data.pop((user_id, key), None) is not None

    async def get_or_create_channel(self, identifier: ChannelIdentifier) -> Channel:
        if identifier not in self.channels:
            self.channels[identifier] = Channel(next(self._ids), identifier.platform.value, identifier.id)
        return self.channels[identifier]

    async def get_prefix(self, channel_id: int) -> str | None:
        return self.prefixes.get(channel_id)

    async def list_channels(self, platform: str) -> list[Channel]:
        return sorted((c for c in self.channels.values() if c.platform == platform), key=lambda c: c.id)

    async def set_prefix(self, channel_id: int, prefix: str | None) -> None:
        if prefix:
            self.prefixes[channel_id] = prefix
        else:
            self.prefixes.pop(channel_id, None)

    async def get_mirror_targets(self, channel_id: int) -> list[Channel]:
        return list(self.mirrors.get(channel_id, []))

    async def add_mirror(self, from_channel_id: int, to_channel_id: int) -> bool:
        targets = self.mirrors.setdefault(from_channel_id, [])
        if any(c.id == to_channel_id for c in targets):
            return False
        targets += [c for c in self.channels.values() if c.id == to_channel_id]
        return True

    async def remove_mirror(self, from_channel_id: int, to_channel_id: int) -> bool:
        targets = self.mirrors.get(from_channel_id, [])
        remaining = [c for c in targets if c.id != to_channel_id]
        self.mirrors[from_channel_id] = remaining
        return len(remaining) != len(targets)

    async def get_token(self, user_id: str) -> Token | None:
        return self.tokens.get(user_id)

    async def upsert_token(self, user_id: str, token: str, refresh: str) -> None:
        self.tokens[user_id] = Token(user_id, token, refresh)

    async def get_channel_data(self, channel_id: int, key: str) -> str | None:
        return self.channel_data.get((channel_id, key))

    async def set_channel_data(self, channel_id: int, key: str, value: str) -> None:
        self.channel_data[(channel_id, key)] = value

    async def remove_channel_data(self, channel_id: int, key: str) -> bool:
        return self.channel_data.pop((channel_id, key), None) is not None

    async def get_filters(self, channel_id: int) -> list[Filter]:
        return [f for f in self.filters if f.channel_id == channel_id]

    async def add_filter(
        self,
        channel_id: int,
        regex: str,
        block_message: str | None = None,
        replacement: str | None = None,
    ) -> int:
        re.compile(regex)
        filter_id = next(self._ids)
        self.filters.append(Filter(filter_id, channel_id, regex, block_message, replacement))
        return filter_id

    async def delete_filter(self, channel_id: int, filter_id: int) -> bool:
        remaining = [f for f in self.filters if not (f.channel_id == channel_id and f.id == filter_id)]
        removed = len(remaining) != len(self.filters)
        self.filters = remaining
        return removed

    async def get_command(self, channel_id: int, name: str) -> Command | None:
        command = self.commands.get((channel_id, name))
        if command is not None:
            return command
        for (cid, _), candidate in self.commands.items():
            if cid == channel_id and name in candidate.aliases:
                return candidate
        return None

    async def list_commands(self, channel_id: int) -> list[Command]:
        return [c for (cid, _), c in self.commands.items() if cid == channel_id]

    async def add_command(
        self,
        channel_id: int,
        name: str,
        action: str,
        permissions: int | None = None,
        cooldown: int | None = None,
    ) -> bool:
        if (channel_id, name) in self.commands:
            return False
        self.commands[(channel_id, name)] = Command(channel_id, name, action, permissions, cooldown)
        return True

    async def update_command(self, channel_id: int, name: str, action: str) -> bool:
        command = self.commands.get((channel_id, name))
        if command is None:
            return False
        command.action = action
        return True

    async def delete_command(self, channel_id: int, name: str) -> bool:
        return self.commands.pop((channel_id, name), None) is not None

    async def set_command_aliases(self, channel_id: int, name: str, aliases: list[str]) -> bool:
        command = self.commands.get((channel_id, name))
        if command is None:
            return False
        command.aliases = list(aliases)
        return True

    async def get_triggers(self, channel_id: int) -> list[Trigger]:
        return [t for t in self.triggers if t.channel_id == channel_id]

    async def set_command_triggers(self, channel_id: int, name: str, phrases: list[str]) -> None:
        self.triggers = [
            t for t in self.triggers if not (t.channel_id == channel_id and t.command_name == name)
        ]
        self.triggers += [Trigger(channel_id, name, phrase) for phrase in phrases]

    async def add_eventsub_trigger(
        self, broadcaster_id: str, event_type: str, action: str, subscription_id: str | None = None
    ) -> EventSubTrigger:
        trigger = EventSubTrigger(next(self._ids), broadcaster_id, event_type, action, subscription_id)
        self.eventsub[(broadcaster_id, event_type)] = trigger
        return trigger

    async def get_eventsub_trigger(self, broadcaster_id: str, event_type: str) -> EventSubTrigger | None:
        return self.eventsub.get((broadcaster_id, event_type))

    async def list_eventsub_triggers(self, broadcaster_id: str) -> list[EventSubTrigger]:
        return [t for (bid, _), t in self.eventsub.items() if bid == broadcaster_id]

    async def delete_eventsub_trigger(self, broadcaster_id: str, event_type: str) -> EventSubTrigger | None:
        return self.eventsub.pop((broadcaster_id, event_type), None)

    def clear_caches(self) -> None:
        pass


class FakeContext(ExecutionContext):
    """Context with a fixed identity and a fixed platform permission level."""

    def __init__(
        self,
        *,
        user: UserIdentifier | None = None,
        channel: ChannelIdentifier | None = None,
        display_name: str = "World",
        permission: Permission = Permission.DEFAULT,
        prefixes: list[str] | None = None,
        resolver: PermissionResolver | None = None,
    ) -> None:
        super().__init__(resolver or PermissionResolver())
        self.user = user or UserIdentifier(UserPlatform.IRC, "world")
        self.channel = channel or ChannelIdentifier(ChannelPlatform.IRC, "#chorus")
        self.display_name = display_name
        self.permission = permission
        self.prefixes = ["!"] if prefixes is None else prefixes
        self.lookups = 0

    def get_user_identifier(self) -> UserIdentifier:
        return self.user

    def get_channel(self) -> ChannelIdentifier:
        return self.channel

    def get_display_name(self) -> str:
        return self.display_name

    def get_prefixes(self) -> list[str]:
        return self.prefixes

    async def get_permissions_internal(self) -> Permission:
        self.lookups += 1
        return self.permission


class FakeConnection:
    """Records every statement; ``fetchrow`` answers come from a queue."""

    def __init__(self, pool: FakePool) -> None:
        self.pool = pool

    @asynccontextmanager
    async def transaction(self):
        self.pool.log.append(("BEGIN",))
        yield
        self.pool.log.append(("COMMIT",))

    async def execute(self, query: str, *args: Any) -> str:
        self.pool.log.append(("execute", " ".join(query.split()), args))
        return self.pool.execute_result

    async def executemany(self, query: str, args: Any) -> None:
        self.pool.log.append(("executemany", " ".join(query.split()), list(args)))

    async def fetchrow(self, query: str, *args: Any) -> Any:
        self.pool.log.append(("fetchrow", " ".join(query.split()), args))
        return self.pool.rows.pop(0) if self.pool.rows else None

    async def fetch(self, query: str, *args: Any) -> list[Any]:
        self.pool.log.append(("fetch", " ".join(query.split()), args))
        return self.pool.rows.pop(0) if self.pool.rows else []

    async def fetchval(self, query: str, *args: Any) -> Any:
        self.pool.log.append(("fetchval", " ".join(query.split()), args))
        return self.pool.rows.pop(0) if self.pool.rows else None


class FakePool:
    def __init__(self) -> None:
        self.log: list[tuple] = []
        self.rows: list[Any] = []
        self.execute_result = "OK"

    @asynccontextmanager
    async def acquire(self):
        yield FakeConnection(self)

    def statements(self, kind: str | None = None) -> list[str]:
        return [entry[1] for entry in self.log if len(entry) > 1 and (kind is None or entry[0] == kind)]


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def pool() -> FakePool:
    return FakePool()


def make_settings(**overrides: Any):
    from chorus.core.config import ChorusSettings

    values: dict[str, Any] = {
        "database_url": "postgresql://chorus@localhost/chorus",
        "base_url": "https://chorus.example",
    }
    values.update(overrides)
    return ChorusSettings(_env_file=None, **values)


@pytest.fixture
def settings():
    return make_settings()
