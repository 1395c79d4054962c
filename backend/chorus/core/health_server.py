"""HTTP health check server"""

import asyncio
import logging
import time
from typing import Any

from aiohttp import web

from chorus import __version__
from chorus.core.metrics import BotMetrics
from chorus.platforms.handler import PlatformHandler
from shared.database import DatabaseManager

logger = logging.getLogger("Chorus.Health")

HEARTBEAT_INTERVAL = 300


class HealthCheckServer:
    """HTTP health check server

    Also hosts extra routes (the EventSub callback) registered through
    :meth:`add_routes` before :meth:`start`.
    """

    def __init__(
        self,
        metrics: BotMetrics,
        platform_handler: PlatformHandler,
        database: DatabaseManager | None = None,
        host: str = "0.0.0.0",
        port: int = 4344,
    ):
        self.metrics = metrics
        self.platform_handler = platform_handler
        self.database = database
        self.host = host
        self.port = port
        self.app = web.Application()
        self.runner: web.AppRunner | None = None
        self._start_time: float = time.time()
        self._heartbeat_task: asyncio.Task | None = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Configure HTTP routes"""
        self.app.router.add_get("/", self.handle_root)
        self.app.router.add_get("/health", self.handle_health)
        self.app.router.add_get("/status", self.handle_status)
        self.app.router.add_get("/ping", self.handle_ping)
        self.app.router.add_get("/metrics", self.handle_metrics)

    def add_routes(self, routes: list[web.RouteDef]) -> None:
        self.app.router.add_routes(routes)

    @property
    def ready(self) -> bool:
        return bool(self.platform_handler.platforms)

    async def handle_root(self, request: web.Request) -> web.Response:
        """Root endpoint - minimal service info"""
        return web.json_response({"service": "chorus", "status": "running"})

    async def handle_health(self, request: web.Request) -> web.Response:
        """Liveness check, always 200"""
        return web.json_response(
            {"status": "healthy" if self.ready else "starting", "ready": self.ready},
        )

    async def handle_status(self, request: web.Request) -> web.Response:
        status: dict[str, Any] = {
            "service": "chorus",
            "version": __version__,
            "uptime_seconds": int(time.time() - self._start_time),
            "platforms": self.platform_handler.platforms,
        }
        if self.database is not None:
            status["database"] = await self.database.check_health()
        return web.json_response(status)

    async def handle_ping(self, request: web.Request) -> web.Response:
        """Ping endpoint"""
        return web.Response(text="pong")

    async def handle_metrics(self, request: web.Request) -> web.Response:
        return web.json_response(self.metrics.snapshot())

    async def _heartbeat(self) -> None:
        """Periodic heartbeat, log uptime, DB and connector status"""
        while True:
            await asyncio.sleep(HEARTBEAT_INTERVAL)
            uptime = int(time.time() - self._start_time)
            handled = self.metrics.handle_duration.count
            db_ok = self.database is not None and await self.database.check_health()
            logger.info(
                f"Heartbeat: uptime={uptime}s, db={db_ok}, platforms={self.platform_handler.platforms}, handled={handled}"
            )

    async def start(self) -> None:
        """Start health check server"""
        try:
            self.runner = web.AppRunner(self.app)
            await self.runner.setup()

            site = web.TCPSite(self.runner, self.host, self.port)
            await site.start()

            self._heartbeat_task = asyncio.create_task(self._heartbeat())

            logger.info(f"Health server started on {self.host}:{self.port}")
            logger.info(f"  GET http://{self.host}:{self.port}/health - Health check")
            logger.info(f"  GET http://{self.host}:{self.port}/metrics - Command metrics")

        except Exception as e:
            logger.exception(f"Failed to start health server: {e}")
            raise

    async def stop(self) -> None:
        """Stop health check server"""
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
        if self.runner:
            try:
                await self.runner.cleanup()
                logger.info("Health server stopped")
            except Exception as e:
                logger.exception(f"Error stopping health server: {e}")
