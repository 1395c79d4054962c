"""Twitch chat connector on twitchio's EventSub websocket transport."""

from __future__ import annotations

import logging

import twitchio
from twitchio import eventsub
from twitchio.ext import commands

from chorus.core.config import ChorusSettings
from chorus.core.context import ExecutionContext
from chorus.core.handler import CommandHandler
from chorus.core.permissions import PermissionResolver
from chorus.platforms.handler import PlatformHandler
from shared.models.identifiers import ChannelIdentifier, ChannelPlatform, UserIdentifier, UserPlatform
from shared.store import Store

LOGGER: logging.Logger = logging.getLogger("TwitchConnector")


class TwitchExecutionContext(ExecutionContext):
    def __init__(self, payload: twitchio.ChatMessage, prefix: str, resolver: PermissionResolver) -> None:
        super().__init__(resolver)
        self.payload = payload
        self.prefix = prefix

    def get_user_identifier(self) -> UserIdentifier:
        return UserIdentifier(UserPlatform.TWITCH, str(self.payload.chatter.id))

    def get_channel(self) -> ChannelIdentifier:
        broadcaster = self.payload.broadcaster
        return ChannelIdentifier(ChannelPlatform.TWITCH, str(broadcaster.id), broadcaster.name)

    def get_display_name(self) -> str:
        chatter = self.payload.chatter
        return chatter.display_name or chatter.name or ""

    def get_prefixes(self) -> list[str]:
        return [self.prefix]


class TwitchConnector(commands.Bot):
    """Joins every stored Twitch channel and routes chat into the dispatcher.

    The command framework of ``twitchio.ext.commands`` is not used; all
    messages go through :class:`CommandHandler`.
    """

    def __init__(
        self,
        *,
        settings: ChorusSettings,
        store: Store,
        handler: CommandHandler,
        resolver: PermissionResolver,
        platform_handler: PlatformHandler,
    ) -> None:
        self.settings = settings
        self.store = store
        self.handler = handler
        self.resolver = resolver
        self.platform_handler = platform_handler
        self._subscribed_channels: set[str] = set()

        super().__init__(
            client_id=settings.twitch_client_id,
            client_secret=settings.twitch_client_secret,
            bot_id=settings.twitch_bot_id,
            prefix=settings.command_prefix,
        )

    async def setup_hook(self) -> None:
        if self.settings.twitch_bot_token:
            await self.add_token(self.settings.twitch_bot_token, self.settings.twitch_bot_refresh)

        for channel in await self.store.list_channels(ChannelPlatform.TWITCH.value):
            await self.join_channel(channel.channel)

        self.platform_handler.register(ChannelPlatform.TWITCH, self.send_to_channel)

    async def join_channel(self, broadcaster_id: str) -> None:
        if broadcaster_id in self._subscribed_channels:
            LOGGER.debug(f"Already subscribed: {broadcaster_id}")
            return
        try:
            await self.subscribe_websocket(
                payload=eventsub.ChatMessageSubscription(
                    broadcaster_user_id=broadcaster_id, user_id=self.bot_id
                ),
                as_bot=True,
            )
        except twitchio.HTTPException as e:
            LOGGER.warning(f"Failed to subscribe to chat of {broadcaster_id}: {e}")
            return
        self._subscribed_channels.add(broadcaster_id)
        LOGGER.info(f"Joined Twitch channel {broadcaster_id}")

    async def send_to_channel(self, channel: ChannelIdentifier, message: str) -> None:
        broadcaster = self.create_partialuser(user_id=channel.id)
        await broadcaster.send_message(message=message, sender=self.bot_id, token_for=self.bot_id)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def event_ready(self) -> None:
        LOGGER.info("Successfully logged in as: %s", self.bot_id)

    async def event_message(self, payload: twitchio.ChatMessage) -> None:
        if payload.chatter.id == self.bot_id or payload.broadcaster is None:
            return
        LOGGER.debug(f"[{payload.chatter.name}#{payload.broadcaster.name}]: {payload.text}")

        ctx = TwitchExecutionContext(payload, self.settings.command_prefix, self.resolver)
        response = await self.handler.handle_message(payload.text, ctx)
        if response is None:
            return

        LOGGER.info(f"Replying with {response}")
        await payload.broadcaster.send_message(
            message=response,
            sender=self.bot_id,
            token_for=self.bot_id,
            reply_to_message_id=str(payload.id),
        )

    async def close(self, **options) -> None:
        self.platform_handler.unregister(ChannelPlatform.TWITCH)
        await super().close(**options)
