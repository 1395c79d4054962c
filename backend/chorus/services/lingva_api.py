"""Lingva translate client."""

from __future__ import annotations

from urllib.parse import quote

import httpx


class LingvaClient:
    def __init__(self, url: str = "https://lingva.ml"):
        self.url = url.rstrip("/")
        self._http = httpx.AsyncClient(timeout=10.0)

    async def close(self) -> None:
        await self._http.aclose()

    async def translate(self, text: str, source: str = "auto", target: str = "en") -> str:
        response = await self._http.get(
            f"{self.url}/api/v1/{source}/{target}/{quote(text, safe='')}"
        )
        response.raise_for_status()
        return response.json()["translation"]
