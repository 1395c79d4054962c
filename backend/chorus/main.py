"""Chorus entry point: wire the store, clients, engine and connectors, then run."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import httpx
from dotenv import load_dotenv

from chorus.commands import create_builtin_commands
from chorus.core.config import ChorusSettings, get_settings
from chorus.core.cooldowns import CooldownTracker
from chorus.core.handler import CommandHandler
from chorus.core.health_server import HealthCheckServer
from chorus.core.logging import setup_logging
from chorus.core.metrics import BotMetrics
from chorus.core.permissions import PermissionResolver
from chorus.core.webhooks import EventSubWebhook
from chorus.platforms.discord import DiscordConnector
from chorus.platforms.handler import PlatformHandler
from chorus.platforms.local import LocalConnector
from chorus.platforms.twitch import TwitchConnector
from chorus.scripting.sandbox import LuaSandbox
from chorus.scripting.storage import ModuleStorage
from chorus.services import (
    DiscordAPIClient,
    FinnhubClient,
    LastFMClient,
    LingvaClient,
    OpenWeatherClient,
    SpotifyClient,
    TriviaClient,
    TwitchAPIClient,
)
from chorus.templates import TemplateEngine, build_helpers
from shared.database import DatabaseManager
from shared.migrations.runner import MigrationRunner
from shared.store import Store

LOGGER: logging.Logger = logging.getLogger("Chorus")

env_path = Path(__file__).parent.parent / ".env"

STORE_CACHE_CLEAR_INTERVAL = 600


async def _clear_store_caches(store: Store) -> None:
    while True:
        await asyncio.sleep(STORE_CACHE_CLEAR_INTERVAL)
        store.clear_caches()
        LOGGER.debug("Store caches cleared")


def _log_task_exit(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        LOGGER.error(f"Connector {task.get_name()} stopped: {task.exception()!r}")


async def run(settings: ChorusSettings) -> None:
    database = DatabaseManager(settings.database_url)
    await database.connect()
    await MigrationRunner(database.pool).run_pending()

    store = Store(database.pool)
    metrics = BotMetrics()
    platform_handler = PlatformHandler()
    http = httpx.AsyncClient(timeout=10.0)

    twitch = None
    if settings.twitch_enabled:
        twitch = TwitchAPIClient(
            settings.twitch_client_id,
            settings.twitch_client_secret,
            settings.twitch_bot_id,
            settings.twitch_bot_token,
        )
        twitch.start()
    discord_api = None
    if settings.discord_token:
        discord_api = DiscordAPIClient(settings.discord_token)
        discord_api.start()

    spotify = (
        SpotifyClient(settings.spotify_client_id, settings.spotify_client_secret)
        if settings.spotify_client_id and settings.spotify_client_secret
        else None
    )
    weather = OpenWeatherClient(settings.owm_api_key) if settings.owm_api_key else None
    finnhub = FinnhubClient(settings.finnhub_api_key) if settings.finnhub_api_key else None
    lastfm = LastFMClient(settings.lastfm_api_key) if settings.lastfm_api_key else None
    lingva = LingvaClient(settings.lingva_url) if settings.lingva_url else None
    trivia = TriviaClient()
    clients = [c for c in (twitch, discord_api, spotify, weather, finnhub, lastfm, lingva, trivia) if c is not None]

    resolver = PermissionResolver(settings.admin_identifier, twitch, discord_api)

    storage = ModuleStorage(settings.lua_modules_dir, settings.lua_modules_url)
    await storage.load()
    sandbox = LuaSandbox(store, storage, http, timeout=settings.script_timeout)

    helpers = build_helpers(
        settings=settings,
        store=store,
        http=http,
        platform_handler=platform_handler,
        sandbox=sandbox,
        twitch=twitch,
        spotify=spotify,
        weather=weather,
        finnhub=finnhub,
        lastfm=lastfm,
        lingva=lingva,
        trivia=trivia,
    )
    engine = TemplateEngine(helpers)
    handler = CommandHandler(
        store=store,
        engine=engine,
        cooldowns=CooldownTracker(),
        metrics=metrics,
        platform_handler=platform_handler,
        builtins=create_builtin_commands(
            store=store,
            engine=engine,
            settings=settings,
            metrics=metrics,
            sandbox=sandbox,
            storage=storage,
            twitch=twitch,
        ),
        default_cooldown=settings.default_cooldown,
    )

    health = HealthCheckServer(metrics, platform_handler, database, port=settings.health_port)
    if twitch is not None and settings.eventsub_secret:
        webhook = EventSubWebhook(
            store=store, handler=handler, resolver=resolver, secret=settings.eventsub_secret
        )
        health.add_routes(webhook.routes())
    await health.start()

    background = [asyncio.create_task(_clear_store_caches(store))]
    connectors: list[TwitchConnector | DiscordConnector] = []

    local = None
    if settings.local_port is not None:
        local = LocalConnector(handler, resolver, settings.local_host, settings.local_port)
        await local.start()

    if twitch is not None:
        twitch_bot = TwitchConnector(
            settings=settings,
            store=store,
            handler=handler,
            resolver=resolver,
            platform_handler=platform_handler,
        )
        connectors.append(twitch_bot)
        task = asyncio.create_task(twitch_bot.start(), name="twitch")
        task.add_done_callback(_log_task_exit)
        background.append(task)

    if settings.discord_token:
        discord_bot = DiscordConnector(
            settings=settings,
            handler=handler,
            resolver=resolver,
            platform_handler=platform_handler,
        )
        connectors.append(discord_bot)
        task = asyncio.create_task(discord_bot.start(settings.discord_token), name="discord")
        task.add_done_callback(_log_task_exit)
        background.append(task)

    if not connectors and local is None:
        LOGGER.warning("No connectors configured; only the health server is running")

    LOGGER.info(f"Chorus started, platforms: {platform_handler.platforms}")
    try:
        await asyncio.Event().wait()
    finally:
        LOGGER.info("Shutting down...")
        for connector in connectors:
            try:
                await connector.close()
            except Exception as e:
                LOGGER.warning(f"Error closing {type(connector).__name__}: {e}")
        if local is not None:
            await local.stop()
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)
        await health.stop()
        for client in clients:
            await client.close()
        await http.aclose()
        await database.disconnect()


def main() -> None:
    load_dotenv(dotenv_path=env_path, encoding="utf-8")
    setup_logging()
    settings = get_settings()

    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        LOGGER.warning("Shutting down due to KeyboardInterrupt...")


if __name__ == "__main__":
    main()
