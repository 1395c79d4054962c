"""Discord REST client service"""

from __future__ import annotations

import logging

import httpx

from shared.cache import PeriodicCache

logger = logging.getLogger(__name__)

ALL_PERMISSIONS = (1 << 53) - 1


class DiscordAPIClient:
    """Bot-token client for the Discord REST API.

    Guilds (roles, owner, name) are cached for 10 hours and members for
    10 minutes; both caches are wiped on a timer.
    """

    DISCORD_API_URL = "https://discord.com/api/v10"

    def __init__(self, token: str):
        if not token:
            raise ValueError("Discord bot token is required")
        self._http = httpx.AsyncClient(
            base_url=self.DISCORD_API_URL,
            timeout=10.0,
            headers={"Authorization": f"Bot {token}"},
        )
        self.guild_cache = PeriodicCache("discord-guilds", 36000)
        self.member_cache = PeriodicCache("discord-members", 600)

    def start(self) -> None:
        self.guild_cache.start()
        self.member_cache.start()

    async def close(self) -> None:
        """Close the shared HTTP client. Call on app shutdown."""
        await self.guild_cache.stop()
        await self.member_cache.stop()
        await self._http.aclose()

    async def _get(self, path: str) -> dict:
        response = await self._http.get(path)
        logger.debug(f"GET {path}: {response.status_code}")
        response.raise_for_status()
        return response.json()

    async def get_guild(self, guild_id: str) -> dict:
        guild = self.guild_cache.get(guild_id)
        if guild is None:
            guild = self.guild_cache[guild_id] = await self._get(f"/guilds/{guild_id}")
        return guild

    async def get_guild_name(self, guild_id: str) -> str:
        return (await self.get_guild(guild_id))["name"]

    async def get_member(self, guild_id: str, user_id: str) -> dict:
        key = f"{guild_id}:{user_id}"
        member = self.member_cache.get(key)
        if member is None:
            member = self.member_cache[key] = await self._get(f"/guilds/{guild_id}/members/{user_id}")
        return member

    async def get_member_permissions(self, guild_id: str, user_id: str) -> int:
        """Guild-level permission bitset of a member.

        The owner has every permission; everyone else gets the union of the
        ``@everyone`` role (whose id is the guild id) and their own roles.
        """
        guild = await self.get_guild(guild_id)
        if str(guild.get("owner_id")) == str(user_id):
            return ALL_PERMISSIONS

        member = await self.get_member(guild_id, user_id)
        role_ids = {str(guild_id), *map(str, member.get("roles", []))}
        bits = 0
        for role in guild.get("roles", []):
            if str(role["id"]) in role_ids:
                bits |= int(role["permissions"])
        return bits

    async def send_message(self, channel_id: str, content: str) -> None:
        response = await self._http.post(f"/channels/{channel_id}/messages", json={"content": content})
        response.raise_for_status()
