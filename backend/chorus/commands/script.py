from __future__ import annotations

from chorus.commands.base import BuiltinCommand
from chorus.core.context import InvocationContext
from chorus.core.errors import MissingArgument
from chorus.core.permissions import Permission
from chorus.scripting.sandbox import LuaSandbox


class LuaCommand(BuiltinCommand):
    """Evaluate the arguments as a Lua chunk."""

    names = ("lua",)
    permission = Permission.CHANNEL_MOD

    def __init__(self, sandbox: LuaSandbox) -> None:
        self.sandbox = sandbox

    async def execute(self, invocation: InvocationContext) -> str | None:
        if not invocation.arguments:
            raise MissingArgument("script")
        return await self.sandbox.evaluate(" ".join(invocation.arguments), invocation) or None
