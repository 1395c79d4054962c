"""Permission levels and their per-platform resolution."""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import TYPE_CHECKING

import httpx

from chorus.core.errors import ConfigurationError, GenericError, InvalidArgument
from shared.models.identifiers import ChannelIdentifier, ChannelPlatform, UserIdentifier

if TYPE_CHECKING:
    from chorus.services.discord_api import DiscordAPIClient
    from chorus.services.twitch_api import TwitchAPIClient

LOGGER = logging.getLogger("PermissionResolver")

# Discord ADMINISTRATOR permission bit
DISCORD_ADMINISTRATOR = 1 << 3


class Permission(IntEnum):
    DEFAULT = 0
    CHANNEL_MOD = 1
    CHANNEL_OWNER = 2
    ADMIN = 3

    @classmethod
    def parse(cls, value: str) -> Permission:
        """Accept a level name (``mod``, ``channel_owner``...) or its number."""
        aliases = {
            "default": cls.DEFAULT,
            "everyone": cls.DEFAULT,
            "mod": cls.CHANNEL_MOD,
            "moderator": cls.CHANNEL_MOD,
            "channel_mod": cls.CHANNEL_MOD,
            "owner": cls.CHANNEL_OWNER,
            "channel_owner": cls.CHANNEL_OWNER,
            "admin": cls.ADMIN,
        }
        key = value.strip().lower()
        if key in aliases:
            return aliases[key]
        try:
            return cls(int(key))
        except ValueError:
            raise InvalidArgument("permission") from None

    def __str__(self) -> str:
        return self.name.lower()


class PermissionResolver:
    """Computes a user's permission level in a channel.

    Holds the one global admin identity (resolved from config at startup)
    and the platform clients needed to look up moderators. Lookup failures
    are raised, never downgraded to ``DEFAULT``.
    """

    def __init__(
        self,
        admin: UserIdentifier | None = None,
        twitch: TwitchAPIClient | None = None,
        discord: DiscordAPIClient | None = None,
    ) -> None:
        self.admin = admin
        self.twitch = twitch
        self.discord = discord

    def is_admin(self, user: UserIdentifier) -> bool:
        return self.admin is not None and user == self.admin

    async def resolve_permissions(
        self,
        user: UserIdentifier,
        channel: ChannelIdentifier,
        display_name: str | None = None,
    ) -> Permission:
        if self.is_admin(user):
            return Permission.ADMIN
        return await self.resolve_for_platform(user, channel, display_name)

    async def resolve_for_platform(
        self,
        user: UserIdentifier,
        channel: ChannelIdentifier,
        display_name: str | None = None,
    ) -> Permission:
        platform = channel.platform

        if platform is ChannelPlatform.TWITCH:
            return await self._twitch_permissions(channel, display_name or user.id)
        if platform is ChannelPlatform.DISCORD_GUILD:
            return await self._discord_permissions(user, channel)
        if platform is ChannelPlatform.LOCAL:
            return Permission.CHANNEL_OWNER
        if platform is ChannelPlatform.ANONYMOUS:
            return Permission.CHANNEL_MOD
        # IRC and Telegram have no moderator lookup
        return Permission.DEFAULT

    async def _twitch_permissions(self, channel: ChannelIdentifier, display_name: str) -> Permission:
        if self.twitch is None:
            raise ConfigurationError("TWITCH_CLIENT_ID")
        try:
            login = channel.display_name or await self.twitch.get_user_login(channel.id)
            mods = await self.twitch.get_channel_mods(login)
        except httpx.HTTPError as e:
            LOGGER.warning(f"Moderator lookup failed for {channel}: {type(e).__name__}: {e}")
            raise GenericError(f"could not fetch moderators: {e}") from e
        return Permission.CHANNEL_MOD if display_name.lower() in mods else Permission.DEFAULT

    async def _discord_permissions(self, user: UserIdentifier, channel: ChannelIdentifier) -> Permission:
        if self.discord is None:
            raise ConfigurationError("DISCORD_TOKEN")
        try:
            bits = await self.discord.get_member_permissions(channel.id, user.id)
        except httpx.HTTPError as e:
            LOGGER.warning(f"Permission lookup failed for {user} in {channel}: {type(e).__name__}: {e}")
            raise GenericError(f"could not fetch member permissions: {e}") from e
        return Permission.CHANNEL_MOD if bits & DISCORD_ADMINISTRATOR else Permission.DEFAULT
