from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from chorus.core.errors import ConfigurationError, GenericError, InvalidArgument
from chorus.core.permissions import DISCORD_ADMINISTRATOR, Permission, PermissionResolver
from conftest import FakeContext
from shared.models.identifiers import (
    ChannelIdentifier,
    ChannelPlatform,
    UserIdentifier,
    UserPlatform,
)

ADMIN = UserIdentifier(UserPlatform.TWITCH, "1")
VIEWER = UserIdentifier(UserPlatform.TWITCH, "2")
TWITCH_CHANNEL = ChannelIdentifier(ChannelPlatform.TWITCH, "100", "streamer")


def test_permission_levels_are_ordered() -> None:
    assert Permission.DEFAULT < Permission.CHANNEL_MOD < Permission.CHANNEL_OWNER < Permission.ADMIN


@pytest.mark.parametrize(
    ("text", "expected"),
    [("mod", Permission.CHANNEL_MOD), ("Owner", Permission.CHANNEL_OWNER), ("3", Permission.ADMIN)],
)
def test_parse_accepts_names_and_numbers(text: str, expected: Permission) -> None:
    assert Permission.parse(text) is expected


def test_parse_rejects_unknown_levels() -> None:
    with pytest.raises(InvalidArgument):
        Permission.parse("supreme")


@pytest.mark.anyio
async def test_admin_shortcut_skips_platform_lookup() -> None:
    twitch = AsyncMock()
    resolver = PermissionResolver(admin=ADMIN, twitch=twitch)

    level = await resolver.resolve_permissions(ADMIN, TWITCH_CHANNEL, "admin")

    assert level is Permission.ADMIN
    twitch.get_channel_mods.assert_not_awaited()


@pytest.mark.anyio
async def test_context_applies_admin_shortcut_and_memoizes() -> None:
    ctx = FakeContext(user=ADMIN, resolver=PermissionResolver(admin=ADMIN))
    assert await ctx.get_permissions() is Permission.ADMIN
    assert ctx.lookups == 0

    viewer = FakeContext(user=VIEWER, permission=Permission.CHANNEL_MOD)
    assert await viewer.get_permissions() is Permission.CHANNEL_MOD
    assert await viewer.get_permissions() is Permission.CHANNEL_MOD
    assert viewer.lookups == 1


@pytest.mark.anyio
async def test_twitch_moderators_come_from_mod_list() -> None:
    twitch = AsyncMock()
    twitch.get_channel_mods.return_value = {"streamer", "helper"}
    resolver = PermissionResolver(twitch=twitch)

    assert await resolver.resolve_for_platform(VIEWER, TWITCH_CHANNEL, "Helper") is Permission.CHANNEL_MOD
    assert await resolver.resolve_for_platform(VIEWER, TWITCH_CHANNEL, "lurker") is Permission.DEFAULT
    twitch.get_channel_mods.assert_awaited_with("streamer")


@pytest.mark.anyio
async def test_twitch_lookup_failure_is_an_error_not_default() -> None:
    twitch = AsyncMock()
    twitch.get_channel_mods.side_effect = httpx.ConnectError("down")
    resolver = PermissionResolver(twitch=twitch)

    with pytest.raises(GenericError):
        await resolver.resolve_for_platform(VIEWER, TWITCH_CHANNEL, "helper")


@pytest.mark.anyio
async def test_twitch_without_client_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        await PermissionResolver().resolve_for_platform(VIEWER, TWITCH_CHANNEL, "helper")


@pytest.mark.anyio
async def test_discord_administrator_bit_grants_mod() -> None:
    discord = AsyncMock()
    resolver = PermissionResolver(discord=discord)
    guild = ChannelIdentifier(ChannelPlatform.DISCORD_GUILD, "555")
    member = UserIdentifier(UserPlatform.DISCORD, "42")

    discord.get_member_permissions.return_value = DISCORD_ADMINISTRATOR | 1
    assert await resolver.resolve_for_platform(member, guild) is Permission.CHANNEL_MOD

    discord.get_member_permissions.return_value = 1 << 11
    assert await resolver.resolve_for_platform(member, guild) is Permission.DEFAULT


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("channel", "expected"),
    [
        (ChannelIdentifier(ChannelPlatform.LOCAL, "127.0.0.1"), Permission.CHANNEL_OWNER),
        (ChannelIdentifier.anonymous(), Permission.CHANNEL_MOD),
        (ChannelIdentifier(ChannelPlatform.IRC, "#chan"), Permission.DEFAULT),
        (ChannelIdentifier(ChannelPlatform.TELEGRAM, "-100"), Permission.DEFAULT),
    ],
)
async def test_static_platform_levels(channel: ChannelIdentifier, expected: Permission) -> None:
    assert await PermissionResolver().resolve_for_platform(VIEWER, channel) is expected
