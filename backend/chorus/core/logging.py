import logging
import os

from rich.console import Console
from rich.logging import RichHandler

_PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, log_level, logging.INFO)

    try:
        console = Console(width=120)
        rich_handler = RichHandler(
            console=console,
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            tracebacks_width=120,
        )
        rich_handler.setFormatter(
            logging.Formatter(fmt="%(name)s: %(message)s", datefmt="[%Y-%m-%d %H:%M:%S]")
        )
        logging.basicConfig(level=level, handlers=[rich_handler], force=True)
    except (OSError, ValueError) as e:
        logging.basicConfig(level=level, format=_PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S", force=True)
        logging.getLogger("chorus").warning(f"Failed to setup Rich logging: {e}, using standard logging")

    noisy = logging.INFO if level == logging.DEBUG else logging.WARNING
    for name in ("twitchio", "twitchio.http", "twitchio.websockets", "discord", "discord.gateway", "httpx"):
        logging.getLogger(name).setLevel(noisy)

    logging.getLogger("asyncio").setLevel(logging.ERROR)
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
