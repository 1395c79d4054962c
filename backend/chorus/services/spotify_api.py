"""Spotify Web API client (per-user access tokens)."""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

SPOTIFY_API = "https://api.spotify.com/v1"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"


class SpotifyClient:
    def __init__(self, client_id: str, client_secret: str):
        self.client_id = client_id
        self.client_secret = client_secret
        self._http = httpx.AsyncClient(timeout=10.0)

    async def close(self) -> None:
        await self._http.aclose()

    @staticmethod
    def _format_track(track: dict) -> str:
        artists = ", ".join(a["name"] for a in track.get("artists", []))
        return f"{artists} - {track['name']}"

    async def refresh_access_token(self, refresh_token: str) -> str:
        """Exchange a stored refresh token for a new access token."""
        response = await self._http.post(
            SPOTIFY_TOKEN_URL,
            data={"grant_type": "refresh_token", "refresh_token": refresh_token},
            auth=(self.client_id, self.client_secret),
        )
        response.raise_for_status()
        return response.json()["access_token"]

    async def get_current_song(self, access_token: str) -> str | None:
        """``Artist - Track`` of what is playing now, or None."""
        response = await self._http.get(
            f"{SPOTIFY_API}/me/player/currently-playing",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        logger.debug(f"GET currently-playing: {response.status_code}")
        if response.status_code == 204:
            return None
        response.raise_for_status()
        item = response.json().get("item")
        return self._format_track(item) if item else None

    async def get_last_song(self, access_token: str) -> str | None:
        response = await self._http.get(
            f"{SPOTIFY_API}/me/player/recently-played",
            params={"limit": 1},
            headers={"Authorization": f"Bearer {access_token}"},
        )
        response.raise_for_status()
        items = response.json().get("items", [])
        return self._format_track(items[0]["track"]) if items else None

    async def get_current_playlist(self, access_token: str) -> str | None:
        """Link to the playlist the player is playing from, or None."""
        response = await self._http.get(
            f"{SPOTIFY_API}/me/player",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if response.status_code == 204:
            return None
        response.raise_for_status()
        context = response.json().get("context") or {}
        if context.get("type") != "playlist":
            return None
        return context.get("external_urls", {}).get("spotify")
