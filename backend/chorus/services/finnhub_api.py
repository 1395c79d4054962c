"""Finnhub stock quote client."""

from __future__ import annotations

import httpx

from chorus.core.errors import GenericError

FINNHUB_QUOTE_URL = "https://finnhub.io/api/v1/quote"


class FinnhubClient:
    def __init__(self, api_key: str):
        self._http = httpx.AsyncClient(timeout=10.0, headers={"X-Finnhub-Token": api_key})

    async def close(self) -> None:
        await self._http.aclose()

    async def quote(self, symbol: str) -> dict:
        response = await self._http.get(FINNHUB_QUOTE_URL, params={"symbol": symbol.upper()})
        response.raise_for_status()
        data = response.json()
        # unknown symbols come back as all-zero quotes
        if not data.get("c"):
            raise GenericError(f"unknown symbol {symbol}")
        return data

    async def describe(self, symbol: str) -> str:
        data = await self.quote(symbol)
        return f"{symbol.upper()}: {data['c']} ({data['d']:+}, {data['dp']:+.2f}%)"
