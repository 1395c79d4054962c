"""Execution contexts: who sent a message, where, and with which rights."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from chorus.core.permissions import Permission, PermissionResolver
from shared.models.channel import Channel
from shared.models.identifiers import ChannelIdentifier, UserIdentifier
from shared.models.user import User


class ExecutionContext(ABC):
    """What a platform connector knows about an incoming message.

    Connectors subclass this once per platform; the dispatcher is written
    against this interface only.
    """

    def __init__(self, resolver: PermissionResolver) -> None:
        self.resolver = resolver
        self._permissions: Permission | None = None

    @abstractmethod
    def get_user_identifier(self) -> UserIdentifier: ...

    @abstractmethod
    def get_channel(self) -> ChannelIdentifier: ...

    @abstractmethod
    def get_display_name(self) -> str: ...

    def get_prefixes(self) -> list[str]:
        return []

    async def get_permissions(self) -> Permission:
        """Admin shortcut first, then the platform-specific lookup.

        The result is kept for the lifetime of the context (one message).
        """
        if self._permissions is None:
            if self.resolver.is_admin(self.get_user_identifier()):
                self._permissions = Permission.ADMIN
            else:
                self._permissions = await self.get_permissions_internal()
        return self._permissions

    async def get_permissions_internal(self) -> Permission:
        return await self.resolver.resolve_for_platform(
            self.get_user_identifier(), self.get_channel(), self.get_display_name()
        )


class ServerExecutionContext(ExecutionContext):
    """Context for actions started by the bot itself (webhooks, timers)."""

    def __init__(
        self,
        channel: ChannelIdentifier,
        user: UserIdentifier,
        display_name: str,
        resolver: PermissionResolver,
    ) -> None:
        super().__init__(resolver)
        self.channel = channel
        self.user = user
        self.display_name = display_name

    def get_user_identifier(self) -> UserIdentifier:
        return self.user

    def get_channel(self) -> ChannelIdentifier:
        return self.channel

    def get_display_name(self) -> str:
        return self.display_name

    def get_prefixes(self) -> list[str]:
        return [""]


@dataclass
class InvocationContext:
    """Everything known about one command invocation."""

    ctx: ExecutionContext
    user: User
    channel: Channel
    trigger: str
    arguments: list[str] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.ctx.get_display_name()

    @property
    def user_identifier(self) -> UserIdentifier:
        return self.ctx.get_user_identifier()

    @property
    def channel_identifier(self) -> ChannelIdentifier:
        return self.ctx.get_channel()

    async def permissions(self) -> Permission:
        return await self.ctx.get_permissions()
