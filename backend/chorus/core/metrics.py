"""In-process command metrics, exposed on the health server."""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass


@dataclass
class DurationSummary:
    count: int = 0
    total: float = 0.0
    max: float = 0.0

    def observe(self, seconds: float) -> None:
        self.count += 1
        self.total += seconds
        self.max = max(self.max, seconds)

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0


class BotMetrics:
    """Counters for one bot process; constructed once and passed around."""

    def __init__(self) -> None:
        self.started_at = time.monotonic()
        self.commands: Counter[str] = Counter()
        self.errors: Counter[str] = Counter()
        self.handle_duration = DurationSummary()

    def record_command(self, name: str) -> None:
        self.commands[name] += 1

    def record_error(self, kind: str) -> None:
        self.errors[kind] += 1

    def observe_duration(self, seconds: float) -> None:
        self.handle_duration.observe(seconds)

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.started_at

    def snapshot(self) -> dict:
        return {
            "uptime_seconds": round(self.uptime, 1),
            "commands": dict(self.commands.most_common()),
            "errors": dict(self.errors),
            "handle_command_message": {
                "count": self.handle_duration.count,
                "total_seconds": round(self.handle_duration.total, 4),
                "mean_seconds": round(self.handle_duration.mean, 4),
                "max_seconds": round(self.handle_duration.max, 4),
            },
        }
