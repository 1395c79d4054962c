"""Outbound message routing to whichever connectors are running."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from chorus.core.errors import GenericError
from shared.models.identifiers import ChannelIdentifier, ChannelPlatform

logger = logging.getLogger(__name__)

Sender = Callable[[ChannelIdentifier, str], Awaitable[None]]


class PlatformHandler:
    """Platform -> send function table; connectors register on startup."""

    def __init__(self) -> None:
        self._senders: dict[ChannelPlatform, Sender] = {}

    def register(self, platform: ChannelPlatform, sender: Sender) -> None:
        self._senders[platform] = sender
        logger.info(f"Registered sender for {platform.value}")

    def unregister(self, platform: ChannelPlatform) -> None:
        self._senders.pop(platform, None)

    @property
    def platforms(self) -> list[str]:
        return sorted(p.value for p in self._senders)

    async def send_to_channel(self, channel: ChannelIdentifier, message: str) -> None:
        sender = self._senders.get(channel.platform)
        if sender is None:
            raise GenericError(f"not connected to {channel.platform.value}")
        logger.debug(f"Sending to {channel}: {message}")
        await sender(channel, message)
