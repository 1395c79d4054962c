"""Chat-based custom command management.

Syntax:
    cmd                                  link to the channel's command list
    cmd add <name> [options] <action>    add a command (also: create, addcmd)
    cmd edit <name> <action>             replace the action (also: update, editcmd)
    cmd del <name>                       delete (also: delete, remove, delcmd)
    cmd show <name>                      print the action (also: check, showcmd)
    cmd alias <name> [aliases...]        replace the alias list
    cmd set_triggers <name> <a;b;c>      phrases that run the command
    cmd get_triggers <name>

Options (add, before the action):
    -cd=N          Cooldown in seconds
    -perm=X        Required level: default/mod/owner/admin

Examples:
    !cmd add hello Hi {{arguments.[0]}}!
    !cmd add !slap -cd=30 -perm=mod {{ user }} slaps {{ username(arguments[0]) }}
    !cmd set_triggers hello hello bot;hi bot
"""

from __future__ import annotations

import logging
import re

from chorus.commands.base import BuiltinCommand
from chorus.core.config import ChorusSettings
from chorus.core.context import InvocationContext
from chorus.core.errors import ConfigurationError, InvalidArgument, MissingArgument, NoPermissions
from chorus.core.permissions import Permission
from shared.store import Store

LOGGER = logging.getLogger("CmdCommand")

# Pattern to match option flags like -cd=30, -perm=mod
_OPT_PATTERN = re.compile(r"-(\w+)=(\S+)")

# shorthand trigger -> implied subcommand
_SHORTHANDS = {
    "addcmd": "add",
    "delcmd": "delete",
    "editcmd": "edit",
    "showcmd": "show",
}

_READ_ONLY = {"show", "check", "get_triggers"}
_SUBCOMMANDS = _READ_ONLY | {
    "add",
    "create",
    "del",
    "delete",
    "remove",
    "edit",
    "update",
    "alias",
    "aliases",
    "set_triggers",
}


def _parse_leading_options(args: list[str]) -> tuple[dict[str, str], list[str]]:
    """Split ``-key=value`` tokens off the front of *args*."""
    options: dict[str, str] = {}
    index = 0
    while index < len(args):
        match = _OPT_PATTERN.fullmatch(args[index])
        if not match:
            break
        options[match.group(1).lower()] = match.group(2)
        index += 1
    return options, args[index:]


class CmdCommand(BuiltinCommand):
    names = ("cmd", "addcmd", "delcmd", "editcmd", "showcmd", "help", "commands")
    cooldown = 0
    # checked per subcommand
    permission = Permission.DEFAULT

    def __init__(self, store: Store, settings: ChorusSettings) -> None:
        self.store = store
        self.settings = settings
        # names of every builtin, filled in once they are all built
        self.reserved: frozenset[str] = frozenset(self.names)

    def _strip_prefixes(self, name: str, invocation: InvocationContext) -> str:
        for prefix in [*invocation.ctx.get_prefixes(), self.settings.command_prefix]:
            if prefix and name.startswith(prefix):
                return name[len(prefix) :]
        return name

    def dashboard_link(self, channel_id: int) -> str:
        if not self.settings.base_url:
            raise ConfigurationError("BASE_URL")
        return f"{self.settings.base_url.rstrip('/')}/channels/{channel_id}/commands"

    async def execute(self, invocation: InvocationContext) -> str | None:
        args = list(invocation.arguments)
        trigger = invocation.trigger
        if trigger in ("help", "commands"):
            args = []
        elif trigger in _SHORTHANDS:
            args.insert(0, _SHORTHANDS[trigger])

        if not args:
            return self.dashboard_link(invocation.channel.id)

        subcommand, rest = args[0].lower(), args[1:]
        if subcommand not in _SUBCOMMANDS:
            raise InvalidArgument(subcommand)
        if subcommand not in _READ_ONLY and await invocation.permissions() < Permission.CHANNEL_MOD:
            raise NoPermissions()

        if not rest:
            raise MissingArgument("command name")
        name = self._strip_prefixes(rest[0], invocation)
        rest = rest[1:]
        channel_id = invocation.channel.id

        if subcommand in ("add", "create"):
            return await self._add(invocation, channel_id, name, rest)

        # aliases resolve to the stored name
        existing = await self.store.get_command(channel_id, name)
        if existing is not None:
            name = existing.name

        if subcommand in ("del", "delete", "remove"):
            if await self.store.delete_command(channel_id, name):
                LOGGER.info(f"Command removed: {name} in {channel_id} by {invocation.display_name}")
                return "Command successfully removed"
            return "Command not found"

        if subcommand in ("edit", "update"):
            if not rest:
                raise MissingArgument("command action")
            if await self.store.update_command(channel_id, name, " ".join(rest)):
                return "Command successfully updated"
            return "Command not found"

        if subcommand in ("show", "check"):
            return existing.action if existing else "Command not found"

        if subcommand in ("alias", "aliases"):
            aliases = [self._strip_prefixes(a, invocation) for a in rest]
            if await self.store.set_command_aliases(channel_id, name, aliases):
                return f"Aliases set: {', '.join(aliases)}" if aliases else "Aliases cleared"
            return "Command not found"

        if subcommand == "set_triggers":
            phrases = [p.strip() for p in " ".join(rest).split(";") if p.strip()]
            if not phrases:
                raise MissingArgument("triggers")
            if existing is None:
                return "Command not found"
            await self.store.set_command_triggers(channel_id, name, phrases)
            return "Successfully updated command triggers"

        if subcommand == "get_triggers":
            triggers = await self.store.get_triggers(channel_id)
            phrases = [t.phrase for t in triggers if t.command_name == name]
            return f"Command triggers: {';'.join(phrases)}" if phrases else "Command has no triggers"

        raise InvalidArgument(subcommand)

    async def _add(self, invocation: InvocationContext, channel_id: int, name: str, rest: list[str]) -> str:
        options, action_words = _parse_leading_options(rest)
        if not action_words:
            raise MissingArgument("command action")
        if name.lower() in self.reserved:
            return "Command name is reserved"

        cooldown = None
        if "cd" in options:
            try:
                cooldown = int(options["cd"])
            except ValueError:
                raise InvalidArgument("cd") from None
            if cooldown < 0:
                raise InvalidArgument("cd")
        permissions = int(Permission.parse(options["perm"])) if "perm" in options else None

        added = await self.store.add_command(
            channel_id, name, " ".join(action_words), permissions=permissions, cooldown=cooldown
        )
        if not added:
            return "Command already exists"
        LOGGER.info(f"Command added: {name} in {channel_id} by {invocation.display_name}")
        return "Command successfully added"
