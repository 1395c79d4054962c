"""Per-user per-command cooldowns."""

from __future__ import annotations

import asyncio
import itertools
import logging

LOGGER = logging.getLogger("CooldownTracker")


class CooldownTracker:
    """Set of (user, command) pairs that are currently suppressed.

    Each entry carries a generation number. A scheduled expiry only removes
    the entry it was scheduled for, so an older timer can never evict a
    cooldown armed by a newer invocation of the same pair.

    All mutation happens on the event loop thread without awaiting, which
    makes :meth:`acquire` an atomic check-and-insert.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[int, str], int] = {}
        self._generations = itertools.count(1)

    def is_suppressed(self, user_id: int, command: str) -> bool:
        return (user_id, command) in self._entries

    def acquire(self, user_id: int, command: str) -> int | None:
        """Reserve the pair for an invocation that is about to run.

        Returns a reservation token, or None if the pair is suppressed.
        """
        key = (user_id, command)
        if key in self._entries:
            return None
        token = next(self._generations)
        self._entries[key] = token
        return token

    def release(self, user_id: int, command: str, token: int) -> None:
        """Drop a reservation that did not turn into a cooldown."""
        key = (user_id, command)
        if self._entries.get(key) == token:
            del self._entries[key]

    def arm(self, user_id: int, command: str, duration: float, token: int | None = None) -> None:
        """Suppress the pair for *duration* seconds.

        A zero duration never arms (and frees *token* if one was reserved).
        """
        if duration <= 0:
            if token is not None:
                self.release(user_id, command, token)
            return

        key = (user_id, command)
        if token is None or self._entries.get(key) != token:
            token = next(self._generations)
        self._entries[key] = token
        asyncio.get_running_loop().call_later(duration, self._expire, key, token)
        LOGGER.debug(f"Cooldown armed: user={user_id} command={command} for {duration}s")

    def _expire(self, key: tuple[int, str], token: int) -> None:
        if self._entries.get(key) == token:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)
