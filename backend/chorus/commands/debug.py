from __future__ import annotations

from dataclasses import replace

from chorus.commands.base import BuiltinCommand
from chorus.core.context import InvocationContext
from chorus.core.errors import MissingArgument
from chorus.core.permissions import Permission
from chorus.templates.engine import TemplateEngine


class DebugCommand(BuiltinCommand):
    """Render the arguments as an action, without storing anything."""

    names = ("debug", "check")
    permission = Permission.CHANNEL_MOD

    def __init__(self, engine: TemplateEngine) -> None:
        self.engine = engine

    async def execute(self, invocation: InvocationContext) -> str | None:
        if not invocation.arguments:
            raise MissingArgument("template")
        source = " ".join(invocation.arguments)
        return await self.engine.render(source, replace(invocation, arguments=[]))
