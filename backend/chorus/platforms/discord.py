"""Discord connector on discord.py."""

from __future__ import annotations

import logging

import discord

from chorus.core.config import ChorusSettings
from chorus.core.context import ExecutionContext
from chorus.core.errors import GenericError
from chorus.core.handler import CommandHandler
from chorus.core.permissions import PermissionResolver
from chorus.platforms.handler import PlatformHandler
from shared.models.identifiers import ChannelIdentifier, ChannelPlatform, UserIdentifier, UserPlatform

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000


class DiscordExecutionContext(ExecutionContext):
    """Guild messages map to the guild channel; DMs are anonymous."""

    def __init__(self, message: discord.Message, prefixes: list[str], resolver: PermissionResolver) -> None:
        super().__init__(resolver)
        self.message = message
        self.prefixes = prefixes

    def get_user_identifier(self) -> UserIdentifier:
        return UserIdentifier(UserPlatform.DISCORD, str(self.message.author.id))

    def get_channel(self) -> ChannelIdentifier:
        guild = self.message.guild
        if guild is None:
            return ChannelIdentifier.anonymous()
        return ChannelIdentifier(ChannelPlatform.DISCORD_GUILD, str(guild.id), guild.name)

    def get_display_name(self) -> str:
        return self.message.author.display_name

    def get_prefixes(self) -> list[str]:
        return self.prefixes


class DiscordConnector(discord.Client):
    def __init__(
        self,
        *,
        settings: ChorusSettings,
        handler: CommandHandler,
        resolver: PermissionResolver,
        platform_handler: PlatformHandler,
    ) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(intents=intents)

        self.settings = settings
        self.handler = handler
        self.resolver = resolver
        self.platform_handler = platform_handler

    async def setup_hook(self) -> None:
        self.platform_handler.register(ChannelPlatform.DISCORD_GUILD, self.send_to_channel)

    def prefixes(self) -> list[str]:
        prefixes = [self.settings.command_prefix]
        if self.user is not None:
            prefixes += [f"<@{self.user.id}> ", f"<@!{self.user.id}> "]
        return prefixes

    async def on_ready(self) -> None:
        logger.info(f"Logged into Discord as {self.user} ({len(self.guilds)} guilds)")

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot:
            return

        ctx = DiscordExecutionContext(message, self.prefixes(), self.resolver)
        response = await self.handler.handle_message(message.content, ctx)
        if response is None:
            return

        logger.info(f"Replying with {response}")
        await message.reply(response[:MAX_MESSAGE_LENGTH], mention_author=False)

    async def send_to_channel(self, channel: ChannelIdentifier, message: str) -> None:
        """Post into the guild's system channel, or its first writable text channel."""
        guild = self.get_guild(int(channel.id))
        if guild is None:
            raise GenericError(f"not a member of guild {channel.id}")

        target = guild.system_channel
        if target is None or not target.permissions_for(guild.me).send_messages:
            target = next(
                (c for c in guild.text_channels if c.permissions_for(guild.me).send_messages),
                None,
            )
        if target is None:
            raise GenericError(f"no writable channel in guild {channel.id}")
        await target.send(message[:MAX_MESSAGE_LENGTH])

    async def close(self) -> None:
        self.platform_handler.unregister(ChannelPlatform.DISCORD_GUILD)
        await super().close()
