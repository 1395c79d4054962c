"""Per-channel settings: command prefix, reply filters and chat mirrors.

Syntax:
    prefix                           show the channel's prefix
    prefix <prefix>                  replace it
    prefix reset                     fall back to the platform default

    filter list
    filter block <regex> <message>   replace matching replies with <message>
    filter replace <regex> [text]    substitute every match with [text]
    filter del <id>

    mirror list
    mirror add <platform:channel>    copy this channel's chat to another
    mirror remove <platform:channel>
"""

from __future__ import annotations

import logging
import re

from chorus.commands.base import BuiltinCommand
from chorus.core.context import InvocationContext
from chorus.core.errors import InvalidArgument, MissingArgument
from chorus.core.permissions import Permission
from shared.models.identifiers import ChannelIdentifier
from shared.store import Store

LOGGER = logging.getLogger("ChannelCommands")


class PrefixCommand(BuiltinCommand):
    names = ("prefix",)
    permission = Permission.CHANNEL_MOD

    def __init__(self, store: Store) -> None:
        self.store = store

    async def execute(self, invocation: InvocationContext) -> str | None:
        channel_id = invocation.channel.id
        if not invocation.arguments:
            prefix = await self.store.get_prefix(channel_id)
            return f"Prefix: {prefix}" if prefix else "No custom prefix set"

        prefix = invocation.arguments[0]
        if prefix.lower() == "reset":
            await self.store.set_prefix(channel_id, None)
            return "Prefix reset"
        await self.store.set_prefix(channel_id, prefix)
        LOGGER.info(f"Prefix of {channel_id} set to {prefix!r} by {invocation.display_name}")
        return f"Prefix set to {prefix}"


class FilterCommand(BuiltinCommand):
    names = ("filter", "filters")
    permission = Permission.CHANNEL_MOD

    def __init__(self, store: Store) -> None:
        self.store = store

    async def execute(self, invocation: InvocationContext) -> str | None:
        if not invocation.arguments:
            raise MissingArgument("subcommand")
        subcommand, rest = invocation.arguments[0].lower(), invocation.arguments[1:]
        channel_id = invocation.channel.id

        if subcommand == "list":
            filters = await self.store.get_filters(channel_id)
            if not filters:
                return "No filters"
            return " | ".join(
                f"#{f.id} {f.regex} -> "
                + (f"block: {f.block_message}" if f.block_message is not None else repr(f.replacement or ""))
                for f in filters
            )

        if subcommand in ("del", "delete", "remove"):
            if not rest:
                raise MissingArgument("filter id")
            try:
                filter_id = int(rest[0].lstrip("#"))
            except ValueError:
                raise InvalidArgument("filter id") from None
            if await self.store.delete_filter(channel_id, filter_id):
                return "Filter removed"
            return "Filter not found"

        if subcommand in ("block", "replace"):
            if not rest:
                raise MissingArgument("regex")
            regex, text = rest[0], " ".join(rest[1:])
            if subcommand == "block" and not text:
                raise MissingArgument("block message")
            try:
                if subcommand == "block":
                    filter_id = await self.store.add_filter(channel_id, regex, block_message=text)
                else:
                    filter_id = await self.store.add_filter(channel_id, regex, replacement=text)
            except re.error:
                raise InvalidArgument("regex") from None
            LOGGER.info(f"Filter #{filter_id} added in {channel_id} by {invocation.display_name}")
            return f"Filter #{filter_id} added"

        raise InvalidArgument(subcommand)


class MirrorCommand(BuiltinCommand):
    names = ("mirror",)
    permission = Permission.ADMIN

    def __init__(self, store: Store) -> None:
        self.store = store

    async def execute(self, invocation: InvocationContext) -> str | None:
        if not invocation.arguments:
            raise MissingArgument("subcommand")
        subcommand, rest = invocation.arguments[0].lower(), invocation.arguments[1:]
        channel_id = invocation.channel.id

        if subcommand == "list":
            targets = await self.store.get_mirror_targets(channel_id)
            if not targets:
                return "No mirrors"
            return "Mirrored to: " + ", ".join(t.identifier.to_canonical_string() for t in targets)

        if subcommand not in ("add", "remove", "del", "delete"):
            raise InvalidArgument(subcommand)
        if not rest:
            raise MissingArgument("target channel")
        try:
            identifier = ChannelIdentifier.from_str(rest[0])
        except ValueError:
            raise InvalidArgument("target channel") from None
        if identifier.is_anonymous:
            raise InvalidArgument("target channel")
        target = await self.store.get_or_create_channel(identifier)
        if target.id == channel_id:
            raise InvalidArgument("target channel")

        if subcommand == "add":
            if not await self.store.add_mirror(channel_id, target.id):
                return "Already mirrored"
            LOGGER.info(f"Mirror added: {channel_id} -> {target.id}")
            return f"Mirroring to {identifier.to_canonical_string()}"

        if await self.store.remove_mirror(channel_id, target.id):
            return "Mirror removed"
        return "Mirror not found"
