"""Twitch EventSub webhook callback.

Twitch signs every delivery with HMAC-SHA256 over
``message id + timestamp + raw body`` using the secret given when the
subscription was created. Three message types arrive on the same route:

- ``webhook_callback_verification``: echo ``challenge`` as plain text.
- ``notification``: look up the stored trigger and run its action.
- ``revocation``: drop the trigger row.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from typing import Any

from aiohttp import web

from chorus.core.context import ServerExecutionContext
from chorus.core.errors import CommandError
from chorus.core.handler import CommandHandler
from chorus.core.permissions import PermissionResolver
from chorus.services.twitch_api import EVENTSUB_TYPES
from shared.models.identifiers import ChannelIdentifier, ChannelPlatform, UserIdentifier, UserPlatform
from shared.store import Store

logger = logging.getLogger("Chorus.EventSub")

MESSAGE_ID = "Twitch-Eventsub-Message-Id"
MESSAGE_TIMESTAMP = "Twitch-Eventsub-Message-Timestamp"
MESSAGE_SIGNATURE = "Twitch-Eventsub-Message-Signature"
MESSAGE_TYPE = "Twitch-Eventsub-Message-Type"
MESSAGE_RETRY = "Twitch-Eventsub-Message-Retry"

# Helix subscription type -> friendly event name
_EVENT_NAMES = {sub_type: name for name, (sub_type, _version) in EVENTSUB_TYPES.items()}


def verify_signature(secret: str, message_id: str, timestamp: str, body: bytes, signature: str) -> bool:
    message = message_id.encode() + timestamp.encode() + body
    expected = "sha256=" + hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def event_actor(event: dict[str, Any]) -> tuple[str, str, list[str]]:
    """(broadcaster id, acting user id, arguments) for a notification event.

    Redeems and follows act as the viewer; raids as the raiding broadcaster;
    everything else as the broadcaster itself.
    """
    if "to_broadcaster_user_id" in event:
        return event["to_broadcaster_user_id"], event["from_broadcaster_user_id"], []

    broadcaster_id = event["broadcaster_user_id"]
    user_id = event.get("user_id") or broadcaster_id
    arguments = (event.get("user_input") or "").split()
    return broadcaster_id, user_id, arguments


def event_display_name(event: dict[str, Any]) -> str:
    return (
        event.get("user_name")
        or event.get("from_broadcaster_user_name")
        or event.get("broadcaster_user_name")
        or ""
    )


class EventSubWebhook:
    """aiohttp handler for ``POST /eventsub``."""

    def __init__(
        self,
        *,
        store: Store,
        handler: CommandHandler,
        resolver: PermissionResolver,
        secret: str,
        path: str = "/eventsub",
    ) -> None:
        self.store = store
        self.handler = handler
        self.resolver = resolver
        self.secret = secret
        self.path = path
        self._tasks: set[asyncio.Task] = set()

    def routes(self) -> list[web.RouteDef]:
        return [web.post(self.path, self.handle_callback)]

    async def handle_callback(self, request: web.Request) -> web.Response:
        body = await request.read()
        headers = request.headers

        if not verify_signature(
            self.secret,
            headers.get(MESSAGE_ID, ""),
            headers.get(MESSAGE_TIMESTAMP, ""),
            body,
            headers.get(MESSAGE_SIGNATURE, ""),
        ):
            logger.warning("Rejected EventSub request with an invalid signature")
            return web.Response(status=403)

        if int(headers.get(MESSAGE_RETRY, "0") or 0) > 1:
            logger.warning("Received EventSub message retry")

        try:
            payload = json.loads(body)
        except ValueError:
            return web.Response(status=400)

        message_type = headers.get(MESSAGE_TYPE, "")
        subscription = payload.get("subscription", {})
        logger.info(f"Handling EventSub {message_type} for {subscription.get('type')}")

        if message_type == "webhook_callback_verification":
            return web.Response(text=payload["challenge"], content_type="text/plain")

        if message_type == "notification":
            task = asyncio.create_task(self.handle_notification(subscription, payload.get("event", {})))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return web.Response(status=204)

        if message_type == "revocation":
            await self.handle_revocation(subscription)
            return web.Response(status=204)

        return web.Response(status=400)

    async def handle_notification(self, subscription: dict[str, Any], event: dict[str, Any]) -> None:
        event_name = _EVENT_NAMES.get(subscription.get("type", ""))
        if event_name is None:
            logger.warning(f"Unsupported EventSub type {subscription.get('type')}")
            return

        broadcaster_id, user_id, arguments = event_actor(event)
        trigger = await self.store.get_eventsub_trigger(broadcaster_id, event_name)
        if trigger is None:
            logger.warning(f"Unregistered EventSub notification {event_name} for {broadcaster_id}")
            return

        ctx = ServerExecutionContext(
            channel=ChannelIdentifier(ChannelPlatform.TWITCH, broadcaster_id, event.get("broadcaster_user_login")),
            user=UserIdentifier(UserPlatform.TWITCH, user_id),
            display_name=event_display_name(event),
            resolver=self.resolver,
        )
        try:
            await self.handler.handle_server_message(trigger.action, ctx, arguments)
        except CommandError as e:
            logger.warning(f"EventSub action for {event_name} in {broadcaster_id} failed: {e.message}")
        except Exception:
            logger.exception(f"EventSub action for {event_name} in {broadcaster_id} crashed")

    async def handle_revocation(self, subscription: dict[str, Any]) -> None:
        event_name = _EVENT_NAMES.get(subscription.get("type", ""))
        condition = subscription.get("condition", {})
        broadcaster_id = condition.get("broadcaster_user_id") or condition.get("to_broadcaster_user_id")
        logger.warning(f"EventSub subscription {subscription.get('id')} revoked: {subscription.get('status')}")
        if event_name and broadcaster_id:
            await self.store.delete_eventsub_trigger(broadcaster_id, event_name)
