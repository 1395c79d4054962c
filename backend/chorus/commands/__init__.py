"""Compiled-in commands."""

from __future__ import annotations

from chorus.commands.base import BuiltinCommand
from chorus.commands.channel import FilterCommand, MirrorCommand, PrefixCommand
from chorus.commands.cmd import CmdCommand
from chorus.commands.debug import DebugCommand
from chorus.commands.eventsub import EventSubCommand
from chorus.commands.ping import PingCommand
from chorus.commands.reload import ReloadCommand
from chorus.commands.script import LuaCommand
from chorus.commands.shell import ShellCommand
from chorus.commands.whoami import WhoAmICommand
from chorus.core.config import ChorusSettings
from chorus.core.metrics import BotMetrics
from chorus.scripting.sandbox import LuaSandbox
from chorus.scripting.storage import ModuleStorage
from chorus.services.twitch_api import TwitchAPIClient
from chorus.templates.engine import TemplateEngine
from shared.store import Store

__all__ = ["BuiltinCommand", "create_builtin_commands"]


def create_builtin_commands(
    *,
    store: Store,
    engine: TemplateEngine,
    settings: ChorusSettings,
    metrics: BotMetrics,
    sandbox: LuaSandbox | None = None,
    storage: ModuleStorage | None = None,
    twitch: TwitchAPIClient | None = None,
) -> list[BuiltinCommand]:
    cmd = CmdCommand(store, settings)
    commands: list[BuiltinCommand] = [
        PingCommand(metrics),
        WhoAmICommand(),
        cmd,
        PrefixCommand(store),
        FilterCommand(store),
        MirrorCommand(store),
        DebugCommand(engine),
        ShellCommand(settings.allow_shell),
        ReloadCommand(storage),
    ]
    if sandbox is not None:
        commands.append(LuaCommand(sandbox))
    if twitch is not None:
        commands.append(EventSubCommand(store, twitch, settings))
    cmd.reserved = frozenset(name for command in commands for name in command.names)
    return commands
