"""Twitch EventSub trigger management.

Syntax:
    eventsub add <event> <action>    run <action> when <event> fires
    eventsub remove <event>
    eventsub list

Events: online, offline, title, follow, redeem, raid
"""

from __future__ import annotations

import logging

from chorus.commands.base import BuiltinCommand
from chorus.core.config import ChorusSettings
from chorus.core.context import InvocationContext
from chorus.core.errors import ConfigurationError, GenericError, InvalidArgument, MissingArgument
from chorus.core.permissions import Permission
from chorus.services.twitch_api import EVENTSUB_TYPES, TwitchAPIClient
from shared.models.identifiers import ChannelPlatform
from shared.store import Store

LOGGER = logging.getLogger("EventSubCommand")


class EventSubCommand(BuiltinCommand):
    names = ("eventsub",)
    permission = Permission.CHANNEL_MOD

    def __init__(self, store: Store, twitch: TwitchAPIClient, settings: ChorusSettings) -> None:
        self.store = store
        self.twitch = twitch
        self.settings = settings

    async def execute(self, invocation: InvocationContext) -> str | None:
        channel = invocation.channel_identifier
        if channel.platform is not ChannelPlatform.TWITCH:
            raise GenericError("EventSub is only available in Twitch channels")
        if not invocation.arguments:
            raise MissingArgument("subcommand")

        subcommand, rest = invocation.arguments[0].lower(), invocation.arguments[1:]
        broadcaster_id = channel.id

        if subcommand == "list":
            triggers = await self.store.list_eventsub_triggers(broadcaster_id)
            if not triggers:
                return "No EventSub triggers"
            return "EventSub triggers: " + ", ".join(t.event_type for t in triggers)

        if not rest:
            raise MissingArgument("event")
        event = rest[0].lower()
        if event not in EVENTSUB_TYPES:
            raise InvalidArgument(f"event (one of {', '.join(EVENTSUB_TYPES)})")

        if subcommand == "add":
            action = " ".join(rest[1:])
            if not action:
                raise MissingArgument("action")
            return await self._add(broadcaster_id, event, action)

        if subcommand in ("remove", "delete", "del"):
            trigger = await self.store.delete_eventsub_trigger(broadcaster_id, event)
            if trigger is None:
                return "Trigger not found"
            if trigger.subscription_id:
                await self.twitch.delete_eventsub_subscription(trigger.subscription_id)
            LOGGER.info(f"EventSub trigger removed: {event} in {broadcaster_id}")
            return "EventSub trigger removed"

        raise InvalidArgument(subcommand)

    async def _add(self, broadcaster_id: str, event: str, action: str) -> str:
        if not self.settings.eventsub_callback_url:
            raise ConfigurationError("EVENTSUB_CALLBACK_URL")
        if not self.settings.eventsub_secret:
            raise ConfigurationError("EVENTSUB_SECRET")

        existing = await self.store.get_eventsub_trigger(broadcaster_id, event)
        subscription_id = existing.subscription_id if existing else None
        if subscription_id is None:
            subscription_id = await self.twitch.create_eventsub_subscription(
                event,
                broadcaster_id,
                self.settings.eventsub_callback_url,
                self.settings.eventsub_secret,
            )
        await self.store.add_eventsub_trigger(broadcaster_id, event, action, subscription_id)
        LOGGER.info(f"EventSub trigger added: {event} in {broadcaster_id}")
        return "EventSub trigger added" if existing is None else "EventSub trigger updated"
