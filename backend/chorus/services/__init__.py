"""Outbound third-party API clients used by helpers and builtins."""

from .discord_api import DiscordAPIClient
from .finnhub_api import FinnhubClient
from .lastfm_api import LastFMClient
from .lingva_api import LingvaClient
from .owm_api import OpenWeatherClient
from .spotify_api import SpotifyClient
from .trivia_api import TriviaClient
from .twitch_api import TwitchAPIClient

__all__ = [
    "DiscordAPIClient",
    "FinnhubClient",
    "LastFMClient",
    "LingvaClient",
    "OpenWeatherClient",
    "SpotifyClient",
    "TriviaClient",
    "TwitchAPIClient",
]
