"""Template helpers and the registry that exposes them to actions.

Each helper is an async function registered under the name actions call
it by. ``build_helpers`` only registers a helper when the integration it
needs (API key, platform client, sandbox) is configured, so an action
using an unavailable helper fails with "'weather' is undefined" rather
than at runtime.
"""

from __future__ import annotations

import asyncio
import functools
import json as jsonlib
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import httpx
from jinja2 import pass_context
from jinja2.runtime import Context

from chorus.core.errors import (
    CommandError,
    GenericError,
    InvalidArgument,
    MissingArgument,
    TemplateRenderError,
)
from chorus.templates import forsencode
from shared.models.identifiers import ChannelIdentifier, ChannelPlatform

if TYPE_CHECKING:
    from chorus.core.context import InvocationContext
    from chorus.core.config import ChorusSettings
    from chorus.platforms.handler import PlatformHandler
    from chorus.scripting.sandbox import LuaSandbox
    from chorus.services import (
        FinnhubClient,
        LastFMClient,
        LingvaClient,
        OpenWeatherClient,
        SpotifyClient,
        TriviaClient,
        TwitchAPIClient,
    )
    from shared.store import Store

logger = logging.getLogger(__name__)

INVOCATION_KEY = "chorus.invocation"

Helper = Callable[..., Awaitable[Any]]


def invocation_of(context: Context) -> InvocationContext:
    return context[INVOCATION_KEY]


class HelperRegistry:
    """Name -> helper table, filled once at startup."""

    def __init__(self) -> None:
        self._helpers: dict[str, Helper] = {}

    def register(self, name: str, *, needs_context: bool = False) -> Callable[[Helper], Helper]:
        """Decorator registering *func* as helper *name*.

        External failures raised by the helper are reported as render
        errors carrying the helper name. ``needs_context`` helpers receive
        the Jinja render context first.
        """

        def decorator(func: Helper) -> Helper:
            @functools.wraps(func)
            async def wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    return await func(*args, **kwargs)
                except CommandError:
                    raise
                except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
                    logger.warning(f"Helper {name} failed: {type(e).__name__}: {e}")
                    raise TemplateRenderError(f"{name}: {e}") from e

            self._helpers[name] = pass_context(wrapper) if needs_context else wrapper
            return func

        return decorator

    def names(self) -> list[str]:
        return sorted(self._helpers)

    def __contains__(self, name: str) -> bool:
        return name in self._helpers

    def as_globals(self) -> dict[str, Helper]:
        return dict(self._helpers)


def build_helpers(
    *,
    settings: ChorusSettings,
    store: Store,
    http: httpx.AsyncClient,
    platform_handler: PlatformHandler | None = None,
    sandbox: LuaSandbox | None = None,
    twitch: TwitchAPIClient | None = None,
    spotify: SpotifyClient | None = None,
    weather: OpenWeatherClient | None = None,
    finnhub: FinnhubClient | None = None,
    lastfm: LastFMClient | None = None,
    lingva: LingvaClient | None = None,
    trivia: TriviaClient | None = None,
) -> HelperRegistry:
    registry = HelperRegistry()
    register = registry.register

    # ==================== Basics ====================

    @register("choose")
    async def choose(*options: Any) -> Any:
        if not options:
            raise MissingArgument("options")
        return random.choice(options)

    @register("sleep")
    async def sleep(seconds: Any) -> str:
        await asyncio.sleep(min(float(seconds), settings.max_sleep))
        return ""

    @register("username", needs_context=True)
    async def username(context: Context, name: Any = None) -> str:
        if name is None:
            return invocation_of(context).display_name
        return str(name).lstrip("@")

    @register("concat")
    async def concat(*parts: Any) -> str:
        return "".join(str(p) for p in parts)

    @register("trim_matches")
    async def trim_matches(text: Any, chars: str = " ") -> str:
        return str(text).strip(chars)

    @register("json")
    async def json(text: Any, path: str | None = None) -> Any:
        data = jsonlib.loads(text) if isinstance(text, str) else text
        for part in path.split(".") if path else []:
            data = data[int(part)] if isinstance(data, list) else data[part]
        return data

    @register("forsencode_encode")
    async def forsencode_encode(text: Any) -> str:
        return forsencode.encode(str(text))

    @register("forsencode_decode")
    async def forsencode_decode(code: Any) -> str:
        return forsencode.decode(str(code))

    @register("get")
    async def get(url: str) -> str:
        response = await http.get(url)
        logger.info(f"GET {url}: {response.status_code}")
        response.raise_for_status()
        return response.text

    # ==================== Scratch storage ====================

    @register("user_get", needs_context=True)
    async def user_get(context: Context, key: str, default: Any = "") -> Any:
        value = await store.get_user_data(invocation_of(context).user.id, key)
        return default if value is None else value

    @register("user_set", needs_context=True)
    async def user_set(context: Context, key: str, value: Any) -> str:
        await store.set_user_data(invocation_of(context).user.id, key, str(value))
        return ""

    @register("channel_get", needs_context=True)
    async def channel_get(context: Context, key: str, default: Any = "") -> Any:
        value = await store.get_channel_data(invocation_of(context).channel.id, key)
        return default if value is None else value

    @register("channel_set", needs_context=True)
    async def channel_set(context: Context, key: str, value: Any) -> str:
        await store.set_channel_data(invocation_of(context).channel.id, key, str(value))
        return ""

    # ==================== Cross-channel / scripting ====================

    if platform_handler is not None:

        @register("say")
        async def say(channel: str, message: Any) -> str:
            await platform_handler.send_to_channel(ChannelIdentifier.from_str(channel), str(message))
            return ""

    if sandbox is not None:

        @register("lua", needs_context=True)
        async def lua(context: Context, source: str) -> str:
            return await sandbox.evaluate(source, invocation_of(context))

    # ==================== Integrations ====================

    if spotify is not None:

        async def _spotify_call(user_id: int, call: Callable[[str], Awaitable[str | None]]) -> str | None:
            token = await store.get_user_data(user_id, "spotify_access_token")
            if not token:
                raise GenericError("Spotify is not connected")
            try:
                return await call(token)
            except httpx.HTTPStatusError as e:
                refresh = await store.get_user_data(user_id, "spotify_refresh_token")
                if e.response.status_code != 401 or not refresh:
                    raise
            token = await spotify.refresh_access_token(refresh)
            await store.set_user_data(user_id, "spotify_access_token", token)
            return await call(token)

        @register("song", needs_context=True)
        async def song(context: Context) -> str:
            current = await _spotify_call(invocation_of(context).user.id, spotify.get_current_song)
            return current or "Nothing is playing"

        @register("spotify_last", needs_context=True)
        async def spotify_last(context: Context) -> str:
            last = await _spotify_call(invocation_of(context).user.id, spotify.get_last_song)
            return last or "No recently played songs"

        @register("spotify_playlist", needs_context=True)
        async def spotify_playlist(context: Context) -> str:
            playlist = await _spotify_call(invocation_of(context).user.id, spotify.get_current_playlist)
            return playlist or "Not playing from a playlist"


    if lingva is not None:

        @register("translate")
        async def translate(text: Any, target: str = "en", source: str = "auto") -> str:
            return await lingva.translate(str(text), source=source, target=target)

    if weather is not None:

        @register("weather", needs_context=True)
        async def weather_helper(context: Context, place: str | None = None) -> str:
            place = place or context.get("location")
            if not place:
                place = await store.get_user_data(invocation_of(context).user.id, "location")
            if not place:
                raise MissingArgument("location")
            return await weather.describe(place)

    if trivia is not None:

        @register("trivia")
        async def trivia_helper() -> dict[str, str]:
            return await trivia.random_question()

    if finnhub is not None:

        @register("stock")
        async def stock(symbol: str) -> str:
            return await finnhub.describe(symbol)

    if lastfm is not None:

        @register("lastfm", needs_context=True)
        async def lastfm_helper(context: Context, name: str | None = None) -> str:
            name = name or await store.get_user_data(invocation_of(context).user.id, "lastfm_name")
            if not name:
                raise MissingArgument("lastfm_name")
            return await lastfm.get_recent_track(name)

    if twitch is not None:

        @register("twitchuser")
        async def twitchuser(login: str) -> dict:
            user = await twitch.get_user(login=str(login).lstrip("@"))
            if user is None:
                raise InvalidArgument("user")
            return user

        @register("timeout", needs_context=True)
        async def timeout(context: Context, user: str, duration: Any = 600, reason: str = "") -> str:
            channel = invocation_of(context).channel_identifier
            if channel.platform is not ChannelPlatform.TWITCH:
                raise InvalidArgument("channel")
            target = await twitch.get_user(login=str(user).lstrip("@"))
            if target is None:
                raise InvalidArgument("user")
            await twitch.ban_user(channel.id, target["id"], int(duration), reason)
            return ""

        @register("twitch_commercial", needs_context=True)
        async def twitch_commercial(context: Context, length: Any = 30) -> str:
            channel = invocation_of(context).channel_identifier
            if channel.platform is not ChannelPlatform.TWITCH:
                raise InvalidArgument("channel")
            token = await store.get_token(channel.id)
            if token is None:
                raise GenericError("the broadcaster has not authorized the bot")
            try:
                await twitch.start_commercial(channel.id, int(length), token.token)
            except httpx.HTTPStatusError as e:
                if e.response.status_code != 401:
                    raise
                access, refresh = await twitch.refresh_user_token(token.refresh)
                await store.upsert_token(channel.id, access, refresh)
                await twitch.start_commercial(channel.id, int(length), access)
            return ""


    logger.info(f"Registered template helpers: {', '.join(registry.names())}")
    return registry
