"""Twitch API client service.

Token types:
- App Access Token: public Helix endpoints and EventSub webhook management.
  Auto-fetched and cached.
- Bot User Token: moderation and chat endpoints acting as the bot account.

Moderator lists come from the public ivr.fi mirror, which needs no
broadcaster authorization.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from shared.cache import PeriodicCache

logger = logging.getLogger(__name__)

HELIX_BASE = "https://api.twitch.tv/helix"
OAUTH_BASE = "https://id.twitch.tv/oauth2"
IVR_MODVIP_URL = "https://api.ivr.fi/v2/twitch/modvip"

# friendly name -> (subscription type, version)
EVENTSUB_TYPES: dict[str, tuple[str, str]] = {
    "online": ("stream.online", "1"),
    "offline": ("stream.offline", "1"),
    "title": ("channel.update", "2"),
    "follow": ("channel.follow", "2"),
    "redeem": ("channel.channel_points_custom_reward_redemption.add", "1"),
    "raid": ("channel.raid", "1"),
}


class TwitchAPIClient:
    """Client for interacting with Twitch API.

    Manages a shared httpx client for connection reuse and caches the app
    access token, user lookups (1 hour) and moderator lists (10 minutes).
    """

    def __init__(self, client_id: str, client_secret: str, bot_id: str = "", bot_token: str = ""):
        if not client_id or not client_secret:
            raise ValueError("Twitch client_id and client_secret are required")

        self.client_id = client_id
        self.client_secret = client_secret
        self.bot_id = bot_id
        self.bot_token = bot_token

        self._http = httpx.AsyncClient(timeout=10.0)

        self._app_token: str | None = None
        self._app_token_expires_at: float = 0.0
        self._app_token_lock = asyncio.Lock()

        self.users_cache = PeriodicCache("twitch-users", 3600)
        self.mods_cache = PeriodicCache("twitch-mods", 600)

    def start(self) -> None:
        self.users_cache.start()
        self.mods_cache.start()

    async def close(self) -> None:
        """Close the shared HTTP client. Call on app shutdown."""
        await self.users_cache.stop()
        await self.mods_cache.stop()
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _headers(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Client-Id": self.client_id}

    async def _ensure_app_token(self) -> str:
        """Return a cached app access token, refreshing only when expired."""
        now = time.monotonic()
        if self._app_token and now < self._app_token_expires_at:
            return self._app_token

        async with self._app_token_lock:
            now = time.monotonic()
            if self._app_token and now < self._app_token_expires_at:
                return self._app_token

            response = await self._http.post(
                f"{OAUTH_BASE}/token",
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "client_credentials",
                },
            )
            if response.status_code != 200:
                logger.error(f"Failed to get app token: {response.status_code}")
            response.raise_for_status()

            data = response.json()
            self._app_token = data["access_token"]
            # refresh 5 min early
            self._app_token_expires_at = now + max(data.get("expires_in", 0) - 300, 0)
            return self._app_token

    async def _helix(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json: dict | None = None,
        user_token: bool = False,
        token: str | None = None,
    ) -> httpx.Response:
        """Helix request with the app token, the bot's user token or an explicit *token*."""
        if token is None:
            token = self.bot_token if user_token else await self._ensure_app_token()
        response = await self._http.request(
            method,
            f"{HELIX_BASE}/{path}",
            params=params,
            json=json,
            headers=self._headers(token),
        )
        logger.debug(f"{method} /{path}: {response.status_code}")
        response.raise_for_status()
        return response

    # ------------------------------------------------------------------
    # Users & moderators
    # ------------------------------------------------------------------

    async def get_user(self, *, login: str | None = None, user_id: str | None = None) -> dict | None:
        """Look up a Twitch user by login or id."""
        key = f"login:{login.lower()}" if login else f"id:{user_id}"
        if key in self.users_cache:
            return self.users_cache[key]

        params = {"login": login} if login else {"id": user_id}
        response = await self._helix("GET", "users", params=params)
        data = response.json().get("data", [])
        user = data[0] if data else None
        self.users_cache[key] = user
        if user:
            self.users_cache[f"login:{user['login']}"] = user
            self.users_cache[f"id:{user['id']}"] = user
        return user

    async def get_user_login(self, user_id: str) -> str:
        user = await self.get_user(user_id=user_id)
        if user is None:
            raise httpx.HTTPError(f"twitch user {user_id} not found")
        return user["login"]

    async def get_channel_mods(self, channel_login: str) -> set[str]:
        """Lower-cased logins of the channel's moderators, broadcaster included."""
        channel_login = channel_login.lower()
        cached = self.mods_cache.get(channel_login)
        if cached is not None:
            return cached

        response = await self._http.get(f"{IVR_MODVIP_URL}/{channel_login}")
        logger.debug(f"GET modvip/{channel_login}: {response.status_code}")
        response.raise_for_status()

        mods = {m["login"].lower() for m in response.json().get("mods", [])}
        mods.add(channel_login)
        self.mods_cache[channel_login] = mods
        return mods

    # ------------------------------------------------------------------
    # Moderation & chat (bot user token)
    # ------------------------------------------------------------------

    async def ban_user(self, broadcaster_id: str, user_id: str, duration: int | None, reason: str = "") -> None:
        """Timeout (``duration`` seconds) or ban (``None``) a user."""
        data: dict[str, Any] = {"user_id": user_id, "reason": reason}
        if duration is not None:
            data["duration"] = duration
        await self._helix(
            "POST",
            "moderation/bans",
            params={"broadcaster_id": broadcaster_id, "moderator_id": self.bot_id},
            json={"data": data},
            user_token=True,
        )
        logger.info(f"Banned {user_id} in {broadcaster_id} for {duration or 'ever'}")

    async def send_chat_message(self, broadcaster_id: str, message: str) -> None:
        await self._helix(
            "POST",
            "chat/messages",
            json={"broadcaster_id": broadcaster_id, "sender_id": self.bot_id, "message": message},
            user_token=True,
        )

    # ------------------------------------------------------------------
    # Broadcaster actions (broadcaster user token)
    # ------------------------------------------------------------------

    async def refresh_user_token(self, refresh_token: str) -> tuple[str, str]:
        """Return a new ``(access, refresh)`` pair for a broadcaster's token."""
        response = await self._http.post(
            f"{OAUTH_BASE}/token",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
        )
        response.raise_for_status()
        data = response.json()
        return data["access_token"], data["refresh_token"]

    async def start_commercial(self, broadcaster_id: str, length: int, token: str) -> dict:
        """Needs the ``channel:edit:commercial`` scope on the broadcaster's token."""
        response = await self._helix(
            "POST",
            "channels/commercial",
            json={"broadcaster_id": broadcaster_id, "length": length},
            token=token,
        )
        data = response.json().get("data", [])
        logger.info(f"Started {length}s commercial in {broadcaster_id}")
        return data[0] if data else {}

    # ------------------------------------------------------------------
    # EventSub (webhook transport, app token)
    # ------------------------------------------------------------------

    async def create_eventsub_subscription(
        self,
        event: str,
        broadcaster_id: str,
        callback: str,
        secret: str,
    ) -> str:
        """Subscribe to a friendly event name; returns the subscription id."""
        sub_type, version = EVENTSUB_TYPES[event]
        condition = {"broadcaster_user_id": broadcaster_id}
        if sub_type == "channel.follow":
            condition["moderator_user_id"] = self.bot_id
        elif sub_type == "channel.raid":
            condition = {"to_broadcaster_user_id": broadcaster_id}

        response = await self._helix(
            "POST",
            "eventsub/subscriptions",
            json={
                "type": sub_type,
                "version": version,
                "condition": condition,
                "transport": {"method": "webhook", "callback": callback, "secret": secret},
            },
        )
        subscription_id = response.json()["data"][0]["id"]
        logger.info(f"EventSub {sub_type} subscribed for {broadcaster_id}: {subscription_id}")
        return subscription_id

    async def delete_eventsub_subscription(self, subscription_id: str) -> None:
        await self._helix("DELETE", "eventsub/subscriptions", params={"id": subscription_id})
