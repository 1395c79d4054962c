"""OpenWeatherMap current weather client."""

from __future__ import annotations

import logging

import httpx

from chorus.core.errors import GenericError

logger = logging.getLogger(__name__)

OWM_WEATHER_URL = "https://api.openweathermap.org/data/2.5/weather"


class OpenWeatherClient:
    def __init__(self, api_key: str):
        self.api_key = api_key
        self._http = httpx.AsyncClient(timeout=10.0)

    async def close(self) -> None:
        await self._http.aclose()

    async def get_current(self, place: str) -> dict:
        response = await self._http.get(
            OWM_WEATHER_URL,
            params={"q": place, "appid": self.api_key, "units": "metric"},
        )
        logger.info(f"GET weather {place!r}: {response.status_code}")
        if response.status_code == 404:
            raise GenericError("location not found")
        if response.status_code != 200:
            raise GenericError(f"unexpected code {response.status_code}")
        return response.json()

    async def describe(self, place: str) -> str:
        data = await self.get_current(place)
        main = data["main"]
        conditions = ", ".join(w["description"] for w in data.get("weather", []))
        return (
            f"{data['name']}, {data['sys'].get('country', '')}: {main['temp']:.1f}°C "
            f"(feels like {main['feels_like']:.1f}°C), {conditions}"
        )
