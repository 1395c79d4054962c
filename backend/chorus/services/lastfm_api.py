"""Last.fm recent tracks client."""

from __future__ import annotations

import httpx

from chorus.core.errors import GenericError

LASTFM_API_URL = "https://ws.audioscrobbler.com/2.0/"


class LastFMClient:
    def __init__(self, api_key: str):
        self.api_key = api_key
        self._http = httpx.AsyncClient(timeout=10.0)

    async def close(self) -> None:
        await self._http.aclose()

    async def get_recent_track(self, username: str) -> str:
        response = await self._http.get(
            LASTFM_API_URL,
            params={
                "method": "user.getrecenttracks",
                "user": username,
                "api_key": self.api_key,
                "format": "json",
                "limit": 1,
            },
        )
        response.raise_for_status()
        data = response.json()
        if "error" in data:
            raise GenericError(data.get("message", "last.fm error"))
        tracks = data["recenttracks"]["track"]
        if not tracks:
            raise GenericError("no recent tracks")
        track = tracks[0]
        return f"{track['artist']['#text']} - {track['name']}"
