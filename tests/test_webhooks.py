from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from chorus.core.permissions import PermissionResolver
from chorus.core.webhooks import (
    MESSAGE_ID,
    MESSAGE_SIGNATURE,
    MESSAGE_TIMESTAMP,
    MESSAGE_TYPE,
    EventSubWebhook,
    event_actor,
    verify_signature,
)
from conftest import FakeStore
from shared.models.identifiers import ChannelPlatform, UserIdentifier, UserPlatform

SECRET = "s3cret-value"


def signed_request(message_type: str, payload: dict, secret: str = SECRET) -> SimpleNamespace:
    body = json.dumps(payload).encode()
    message_id, timestamp = "msg-1", "2024-01-01T00:00:00Z"
    digest = hmac.new(secret.encode(), message_id.encode() + timestamp.encode() + body, hashlib.sha256)
    headers = {
        MESSAGE_ID: message_id,
        MESSAGE_TIMESTAMP: timestamp,
        MESSAGE_SIGNATURE: "sha256=" + digest.hexdigest(),
        MESSAGE_TYPE: message_type,
    }
    return SimpleNamespace(headers=headers, read=AsyncMock(return_value=body))


def make_webhook(store: FakeStore) -> tuple[EventSubWebhook, AsyncMock]:
    handler = SimpleNamespace(handle_server_message=AsyncMock())
    webhook = EventSubWebhook(store=store, handler=handler, resolver=PermissionResolver(), secret=SECRET)
    return webhook, handler.handle_server_message


def test_verify_signature_rejects_tampering() -> None:
    body = b'{"a": 1}'
    signature = "sha256=" + hmac.new(b"key", b"idts" + body, hashlib.sha256).hexdigest()

    assert verify_signature("key", "id", "ts", body, signature)
    assert not verify_signature("key", "id", "ts", body + b" ", signature)
    assert not verify_signature("other", "id", "ts", body, signature)


def test_event_actor_per_event_kind() -> None:
    redeem = {"broadcaster_user_id": "100", "user_id": "7", "user_input": "hello there"}
    raid = {"to_broadcaster_user_id": "100", "from_broadcaster_user_id": "9"}
    online = {"broadcaster_user_id": "100"}

    assert event_actor(redeem) == ("100", "7", ["hello", "there"])
    assert event_actor(raid) == ("100", "9", [])
    assert event_actor(online) == ("100", "100", [])


@pytest.mark.anyio
async def test_challenge_is_echoed(store: FakeStore) -> None:
    webhook, _ = make_webhook(store)
    request = signed_request("webhook_callback_verification", {"challenge": "abc123", "subscription": {}})

    response = await webhook.handle_callback(request)

    assert response.status == 200
    assert response.text == "abc123"


@pytest.mark.anyio
async def test_bad_signature_is_forbidden(store: FakeStore) -> None:
    webhook, handle = make_webhook(store)
    request = signed_request("notification", {"subscription": {}}, secret="wrong")

    response = await webhook.handle_callback(request)

    assert response.status == 403
    handle.assert_not_awaited()


@pytest.mark.anyio
async def test_notification_runs_stored_action(store: FakeStore) -> None:
    webhook, handle = make_webhook(store)
    await store.add_eventsub_trigger("100", "redeem", "{{ user }} redeemed {{ args }}", "sub-1")
    request = signed_request(
        "notification",
        {
            "subscription": {"id": "sub-1", "type": "channel.channel_points_custom_reward_redemption.add"},
            "event": {
                "broadcaster_user_id": "100",
                "broadcaster_user_login": "streamer",
                "user_id": "7",
                "user_name": "Viewer",
                "user_input": "hydrate",
            },
        },
    )

    response = await webhook.handle_callback(request)
    await asyncio.gather(*webhook._tasks)

    assert response.status == 204
    action, ctx, arguments = handle.await_args.args
    assert action == "{{ user }} redeemed {{ args }}"
    assert arguments == ["hydrate"]
    assert ctx.get_channel().platform is ChannelPlatform.TWITCH
    assert ctx.get_channel().id == "100"
    assert ctx.get_user_identifier() == UserIdentifier(UserPlatform.TWITCH, "7")
    assert ctx.get_display_name() == "Viewer"


@pytest.mark.anyio
async def test_unregistered_notification_is_ignored(store: FakeStore) -> None:
    webhook, handle = make_webhook(store)

    await webhook.handle_notification({"type": "stream.online"}, {"broadcaster_user_id": "100"})

    handle.assert_not_awaited()


@pytest.mark.anyio
async def test_revocation_drops_trigger(store: FakeStore) -> None:
    webhook, _ = make_webhook(store)
    await store.add_eventsub_trigger("100", "online", "We are live!", "sub-2")
    request = signed_request(
        "revocation",
        {
            "subscription": {
                "id": "sub-2",
                "type": "stream.online",
                "status": "authorization_revoked",
                "condition": {"broadcaster_user_id": "100"},
            }
        },
    )

    response = await webhook.handle_callback(request)

    assert response.status == 204
    assert await store.get_eventsub_trigger("100", "online") is None
