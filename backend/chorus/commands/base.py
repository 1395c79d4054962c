"""Base class for compiled-in commands."""

from __future__ import annotations

from abc import ABC, abstractmethod

from chorus.core.context import InvocationContext
from chorus.core.permissions import Permission


class BuiltinCommand(ABC):
    """A command implemented in code rather than stored per channel.

    ``permission`` above DEFAULT is enforced by the dispatcher before
    :meth:`execute` runs; commands with finer rules check inside.
    """

    names: tuple[str, ...] = ()
    cooldown: int = 0
    permission: Permission = Permission.DEFAULT

    @abstractmethod
    async def execute(self, invocation: InvocationContext) -> str | None: ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {'/'.join(self.names)}>"
