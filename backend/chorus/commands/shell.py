from __future__ import annotations

import asyncio
import logging

from chorus.commands.base import BuiltinCommand
from chorus.core.context import InvocationContext
from chorus.core.errors import GenericError, MissingArgument, NoPermissions
from chorus.core.permissions import Permission

LOGGER = logging.getLogger("ShellCommand")

SHELL_TIMEOUT = 30.0
MAX_OUTPUT = 400


class ShellCommand(BuiltinCommand):
    """Run a shell command on the bot host.

    Admin only, and only when the operator enabled ``ALLOW_SHELL``.
    """

    names = ("shell", "sh")
    permission = Permission.ADMIN

    def __init__(self, allow_shell: bool) -> None:
        self.allow_shell = allow_shell

    async def execute(self, invocation: InvocationContext) -> str | None:
        if not self.allow_shell:
            LOGGER.warning(
                f"Rejected shell command from {invocation.user_identifier}: ALLOW_SHELL is not set"
            )
            raise NoPermissions()
        if not invocation.arguments:
            raise MissingArgument("command")

        command = " ".join(invocation.arguments)
        LOGGER.warning(f"Executing shell command for {invocation.user_identifier}: {command}")
        process = await asyncio.create_subprocess_exec(
            "sh",
            "-c",
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), SHELL_TIMEOUT)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise GenericError(f"command timed out after {SHELL_TIMEOUT:.0f}s") from None

        output = " ".join(stdout.decode(errors="replace").split())
        if len(output) > MAX_OUTPUT:
            output = output[:MAX_OUTPUT] + "…"
        return output or f"(exit code {process.returncode})"
