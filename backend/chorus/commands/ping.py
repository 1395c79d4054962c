from __future__ import annotations

import logging
import resource
from pathlib import Path

from chorus import __version__
from chorus.commands.base import BuiltinCommand
from chorus.core.context import InvocationContext
from chorus.core.metrics import BotMetrics

LOGGER = logging.getLogger(__name__)

SMAPS = Path("/proc/self/smaps")


def memory_usage_kib() -> int:
    """Proportional set size (plus swapped share) of this process, in KiB."""
    try:
        text = SMAPS.read_text()
    except OSError:
        # ru_maxrss is KiB on Linux
        return resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    total = 0
    for line in text.splitlines():
        if line.startswith(("Pss:", "SwapPss:")):
            total += int(line.split()[1])
    return total


class PingCommand(BuiltinCommand):
    names = ("ping",)
    cooldown = 5

    def __init__(self, metrics: BotMetrics) -> None:
        self.metrics = metrics

    async def execute(self, invocation: InvocationContext) -> str | None:
        minutes = int(self.metrics.uptime // 60)
        hours, minutes = divmod(minutes, 60)
        ram_mib = memory_usage_kib() // 1024
        return f"Pong! Version: {__version__}, Uptime {hours}h {minutes}m, RAM usage: {ram_mib} MiB"
