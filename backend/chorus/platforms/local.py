"""Line-based TCP connector for local tooling.

Every received line is one message; each reply is written back followed by
a newline. The peer address is both the user and the channel.
"""

from __future__ import annotations

import asyncio
import logging

from chorus.core.context import ExecutionContext
from chorus.core.handler import CommandHandler
from chorus.core.permissions import PermissionResolver
from shared.models.identifiers import ChannelIdentifier, ChannelPlatform, UserIdentifier, UserPlatform

logger = logging.getLogger(__name__)


class LocalExecutionContext(ExecutionContext):
    def __init__(self, address: str, resolver: PermissionResolver) -> None:
        super().__init__(resolver)
        self.address = address

    def get_user_identifier(self) -> UserIdentifier:
        return UserIdentifier(UserPlatform.LOCAL, self.address)

    def get_channel(self) -> ChannelIdentifier:
        return ChannelIdentifier(ChannelPlatform.LOCAL, self.address)

    def get_display_name(self) -> str:
        return self.address

    def get_prefixes(self) -> list[str]:
        return [""]


class LocalConnector:
    def __init__(
        self,
        handler: CommandHandler,
        resolver: PermissionResolver,
        host: str = "127.0.0.1",
        port: int = 0,
    ) -> None:
        self.handler = handler
        self.resolver = resolver
        self.host = host
        self.port = port
        self._server: asyncio.Server | None = None

    async def start(self) -> None:
        self._server = await asyncio.start_server(self.handle_stream, self.host, self.port)
        sockets = self._server.sockets or []
        if sockets:
            self.port = sockets[0].getsockname()[1]
        logger.info(f"Local connector listening on {self.host}:{self.port}")

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            logger.info("Local connector stopped")

    async def handle_stream(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        address = writer.get_extra_info("peername")[0]
        logger.debug(f"Local connection from {address}")
        try:
            while line := await reader.readline():
                text = line.decode("utf-8", errors="replace").rstrip("\r\n")
                response = await self.handler.handle_message(text, LocalExecutionContext(address, self.resolver))
                if response is not None:
                    writer.write(response.encode() + b"\n")
                    await writer.drain()
        except (ConnectionError, asyncio.IncompleteReadError) as e:
            logger.warning(f"Failed to handle stream from {address}: {e}")
        finally:
            writer.close()
