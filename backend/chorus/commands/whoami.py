from __future__ import annotations

from chorus.commands.base import BuiltinCommand
from chorus.core.context import InvocationContext


class WhoAmICommand(BuiltinCommand):
    names = ("whoami", "id")
    cooldown = 5

    async def execute(self, invocation: InvocationContext) -> str | None:
        permissions = await invocation.permissions()
        linked = ", ".join(str(i) for i in invocation.user.identifiers())
        return (
            f"{invocation.display_name} (user {invocation.user.id}, {invocation.user_identifier}), "
            f"linked: {linked}, channel: {invocation.channel_identifier} ({invocation.channel.id}), "
            f"permissions: {permissions}"
        )
