from __future__ import annotations

from chorus.commands.base import BuiltinCommand
from chorus.core.context import InvocationContext
from chorus.core.errors import ConfigurationError, InvalidArgument, MissingArgument
from chorus.core.permissions import Permission
from chorus.scripting.storage import ModuleStorage


class ReloadCommand(BuiltinCommand):
    names = ("reload",)
    permission = Permission.ADMIN

    def __init__(self, storage: ModuleStorage | None) -> None:
        self.storage = storage

    async def execute(self, invocation: InvocationContext) -> str | None:
        if not invocation.arguments:
            raise MissingArgument("target")
        target = invocation.arguments[0].lower()
        if target != "lua":
            raise InvalidArgument(target)
        if self.storage is None:
            raise ConfigurationError("LUA_MODULES_URL")

        commit = await self.storage.update()
        if commit is None:
            return "No changes"
        return f"Updated to {commit} ({len(self.storage)} modules)"
