"""Command dispatch: from a raw chat line to an optional reply.

Flow for one message::

    handle_message            trigger phrases, prefixes
      -> handle_command_message   tokenize, time, error -> "Error: ..."
        -> run_command            user, cooldown, builtin | custom lookup

``None`` from any stage means "say nothing": an unknown command, a
suppressed cooldown or an action that rendered empty. Failures are always
turned into a visible ``Error: <message>`` reply instead.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable

import asyncpg

from chorus.commands.base import BuiltinCommand
from chorus.core.context import ExecutionContext, InvocationContext, ServerExecutionContext
from chorus.core.cooldowns import CooldownTracker
from chorus.core.errors import CommandError, DatabaseError, NoPermissions
from chorus.core.metrics import BotMetrics
from chorus.core.permissions import Permission
from chorus.platforms.handler import PlatformHandler
from chorus.templates.engine import TemplateEngine
from shared.models.channel import Channel
from shared.store import Store

LOGGER = logging.getLogger("CommandHandler")

DEFAULT_COOLDOWN = 5
EMPTY_COMMAND_REPLY = "❗"
NO_ACTION_REPLY = "Event triggered with no action"


class CommandHandler:
    def __init__(
        self,
        *,
        store: Store,
        engine: TemplateEngine,
        cooldowns: CooldownTracker,
        metrics: BotMetrics,
        platform_handler: PlatformHandler,
        builtins: Iterable[BuiltinCommand] = (),
        default_cooldown: int = DEFAULT_COOLDOWN,
    ) -> None:
        self.store = store
        self.engine = engine
        self.cooldowns = cooldowns
        self.metrics = metrics
        self.platform_handler = platform_handler
        self.default_cooldown = default_cooldown
        self._mirror_tasks: set[asyncio.Task] = set()
        self._builtins: dict[str, BuiltinCommand] = {}
        for command in builtins:
            for name in command.names:
                self._builtins[name] = command
        LOGGER.info(f"Loaded builtin commands: {sorted(self._builtins)}")

    def resolve(self, trigger: str) -> BuiltinCommand | None:
        """Builtin registered under *trigger*, or None to fall through to custom commands."""
        return self._builtins.get(trigger)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_message(self, text: str, ctx: ExecutionContext) -> str | None:
        """Entry point for connectors: any chat line, command or not."""
        try:
            channel = await self.store.get_or_create_channel(ctx.get_channel())
            for target in await self.store.get_mirror_targets(channel.id):
                self._mirror(text, ctx, target)
            for trigger in await self.store.get_triggers(channel.id):
                if text.startswith(trigger.phrase):
                    command_text = f"{trigger.command_name} {text[len(trigger.phrase) :]}"
                    LOGGER.info(f"Executing indirect command {command_text.strip()}")
                    return await self.handle_command_message(command_text, ctx, channel=channel)
            stored_prefix = await self.store.get_prefix(channel.id)
        except asyncpg.PostgresError as e:
            LOGGER.error(f"Database error while routing message in {ctx.get_channel()}: {e}")
            self.metrics.record_error("DatabaseError")
            return None

        prefixes = [stored_prefix] if stored_prefix else []
        prefixes += ctx.get_prefixes()
        for prefix in prefixes:
            if text.startswith(prefix):
                return await self.handle_command_message(text[len(prefix) :], ctx, channel=channel)
        return None

    def _mirror(self, text: str, ctx: ExecutionContext, target: Channel) -> None:
        """Copy a chat line into *target* without holding up the reply."""
        message = f"[{ctx.get_channel()}] {ctx.get_display_name()}: {text}"
        task = asyncio.create_task(self._send_mirrored(target, message))
        self._mirror_tasks.add(task)
        task.add_done_callback(self._mirror_tasks.discard)

    async def _send_mirrored(self, target: Channel, message: str) -> None:
        try:
            await self.platform_handler.send_to_channel(target.identifier, message)
        except Exception as e:
            LOGGER.warning(f"Could not mirror message to {target.identifier}: {e}")

    async def handle_command_message(
        self,
        text: str,
        ctx: ExecutionContext,
        *,
        channel: Channel | None = None,
    ) -> str | None:
        """Run a message that is already known to be a command (prefix stripped)."""
        if not text.strip():
            return EMPTY_COMMAND_REPLY

        command, *arguments = text.split()
        started = time.perf_counter()
        try:
            if channel is None:
                channel = await self.store.get_or_create_channel(ctx.get_channel())
            response = await self.run_command(command, arguments, ctx, channel=channel)
            if response is not None:
                response = await self._apply_filters(response, channel)
        except CommandError as e:
            response = self._error_reply(command, ctx, e)
        except asyncpg.PostgresError as e:
            response = self._error_reply(command, ctx, DatabaseError(f"database error: {e}"))
        except Exception as e:
            LOGGER.exception(f"Unexpected error running {command} in {ctx.get_channel()}")
            self.metrics.record_error(type(e).__name__)
            response = f"Error: {e}"
        finally:
            self.metrics.observe_duration(time.perf_counter() - started)

        if response is not None:
            self.metrics.record_command(command)
        return response

    def _error_reply(self, command: str, ctx: ExecutionContext, error: CommandError) -> str:
        LOGGER.warning(f"{command} in {ctx.get_channel()} failed: {type(error).__name__}: {error.message}")
        self.metrics.record_error(type(error).__name__)
        return f"Error: {error.message}"

    async def run_command(
        self,
        command: str,
        arguments: list[str],
        ctx: ExecutionContext,
        *,
        channel: Channel | None = None,
    ) -> str | None:
        LOGGER.info(f"Processing command {command} with {arguments}")

        user = await self.store.get_or_create_user(ctx.get_user_identifier())
        if channel is None:
            channel = await self.store.get_or_create_channel(ctx.get_channel())

        token = self.cooldowns.acquire(user.id, command)
        if token is None:
            LOGGER.debug(f"{command} suppressed for user {user.id}")
            return None

        cooldown = 0
        try:
            invocation = InvocationContext(ctx, user, channel, command, list(arguments))
            builtin = self.resolve(command)
            if builtin is not None:
                if builtin.permission > Permission.DEFAULT and await ctx.get_permissions() < builtin.permission:
                    raise NoPermissions()
                response = await builtin.execute(invocation)
                cooldown = builtin.cooldown
                return response

            custom = await self.store.get_command(channel.id, command)
            if custom is None:
                return None
            if custom.permissions is not None and await ctx.get_permissions() < Permission(custom.permissions):
                raise NoPermissions()
            response = await self.engine.render(custom.action, invocation)
            cooldown = custom.cooldown if custom.cooldown is not None else self.default_cooldown
            return response
        finally:
            # a zero cooldown just frees the reservation
            self.cooldowns.arm(user.id, command, cooldown, token)

    async def handle_server_message(
        self,
        action: str,
        ctx: ServerExecutionContext,
        arguments: list[str] | None = None,
    ) -> None:
        """Render *action* for a bot-originated event and post it to the target channel."""
        user = await self.store.get_or_create_user(ctx.get_user_identifier())
        channel = await self.store.get_or_create_channel(ctx.get_channel())
        invocation = InvocationContext(ctx, user, channel, "", list(arguments or []))

        response = await self.engine.render(action, invocation) or NO_ACTION_REPLY
        response = await self._apply_filters(response, channel) or NO_ACTION_REPLY
        await self.platform_handler.send_to_channel(ctx.get_channel(), response)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _apply_filters(self, response: str, channel: Channel) -> str | None:
        for response_filter in await self.store.get_filters(channel.id):
            response = response_filter.apply(response)
        return response or None
