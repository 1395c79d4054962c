"""In-process caches for the chorus store and platform clients.

Two flavours live here:

* ``AsyncTTLCache`` + ``cached`` - per-key TTL caching for repository reads,
  with a stale fallback so a short database outage does not take the bot down.
* ``PeriodicCache`` - a plain dict that is wiped completely on a fixed timer.
  Platform API clients use it for moderator lists, user lookups and guild
  names, where the dataset is small and a bounded staleness window is fine.

Cache objects are owned by the repository/client instance that creates them;
nothing in this module is process-global.
"""

import asyncio
import contextlib
import functools
import logging
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, TypeVar

from cachetools import TTLCache  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

# Sentinel object to distinguish "not in cache" from cached None values
_MISSING = object()

F = TypeVar("F", bound=Callable[..., Any])


class AsyncTTLCache:
    """Async-aware TTL cache with a stale fallback store.

    Two tiers:
      1. ``_cache`` (TTLCache) - fresh data, governed by *ttl*.
      2. ``_stale`` (OrderedDict, bounded by *maxsize*) - last-known-good
         values, read only when the database is unreachable.
    """

    def __init__(self, maxsize: int = 128, ttl: float = 60.0):
        self._maxsize = maxsize
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._stale: OrderedDict[str, Any] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}

    def _get_lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
            if len(self._locks) > self._maxsize * 2:
                live = set(self._stale)
                for k in list(self._locks):
                    if k not in live and k not in self._cache and k != key:
                        del self._locks[k]
        return lock

    def get(self, key: str) -> Any:
        """Return fresh value or ``_MISSING``."""
        return self._cache.get(key, _MISSING)

    def set(self, key: str, value: Any) -> None:
        self._cache[key] = value
        self._stale[key] = value
        self._stale.move_to_end(key)
        while len(self._stale) > self._maxsize:
            self._stale.popitem(last=False)

    def invalidate(self, key: str) -> None:
        """Drop *key* from both tiers.

        Invalidation means the value is known to be wrong (merged or deleted
        rows), so the stale tier must not resurrect it either.
        """
        self._cache.pop(key, None)
        self._stale.pop(key, None)

    def invalidate_where(self, predicate: Callable[[str, Any], bool]) -> int:
        """Drop every entry whose ``(key, value)`` matches *predicate*."""
        doomed = [k for k, v in list(self._stale.items()) if predicate(k, v)]
        doomed += [k for k, v in list(self._cache.items()) if predicate(k, v)]
        for key in set(doomed):
            self.invalidate(key)
        return len(set(doomed))

    def clear(self) -> None:
        """Clear fresh cache; stale store is preserved."""
        self._cache.clear()

    def get_stale(self, key: str) -> Any:
        value = self._stale.get(key, _MISSING)
        if value is not _MISSING:
            self._stale.move_to_end(key)
        return value

    @property
    def size(self) -> int:
        return len(self._cache)

    @property
    def stale_size(self) -> int:
        return len(self._stale)


def cached(
    cache: AsyncTTLCache | str,
    key_func: Callable[..., str],
    *,
    retry: int = 3,
):
    """Decorator for caching async method results with DB resilience.

    Parameters
    ----------
    cache : AsyncTTLCache | str
        The cache instance, or the attribute name of a cache held on the
        first positional argument (``self``).
    key_func : callable
        Receives the same ``(*args, **kwargs)`` as the decorated function
        and returns the cache key string.
    retry : int
        Max number of attempts on DB failure (default 3).

    After *retry* failed attempts the stale store is consulted; if it has
    nothing for the key the last exception is re-raised.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            store: AsyncTTLCache = getattr(args[0], cache) if isinstance(cache, str) else cache
            cache_key = key_func(*args, **kwargs)

            result = store.get(cache_key)
            if result is not _MISSING:
                return result

            async with store._get_lock(cache_key):
                result = store.get(cache_key)
                if result is not _MISSING:
                    return result

                last_exc: BaseException | None = None
                for attempt in range(1, retry + 1):
                    try:
                        result = await func(*args, **kwargs)
                        store.set(cache_key, result)
                        return result
                    except asyncio.CancelledError:
                        raise
                    except Exception as exc:
                        last_exc = exc
                        if attempt < retry:
                            delay = 0.5 * attempt
                            logger.warning(
                                "DB attempt %d/%d failed for %s: %s, retrying in %.1fs",
                                attempt,
                                retry,
                                cache_key,
                                type(exc).__name__,
                                delay,
                            )
                            await asyncio.sleep(delay)

                stale = store.get_stale(cache_key)
                if stale is not _MISSING:
                    logger.warning(
                        "Returning stale data for %s (%s)",
                        cache_key,
                        type(last_exc).__name__,
                    )
                    return stale

                raise last_exc  # type: ignore[misc]

        return wrapper  # type: ignore[return-value]

    return decorator


class PeriodicCache(dict):
    """A dict that forgets everything every *interval* seconds.

    Call :meth:`start` once an event loop is running; :meth:`stop` cancels
    the clearing task.
    """

    def __init__(self, name: str, interval: float):
        super().__init__()
        self.name = name
        self.interval = interval
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._clear_loop(), name=f"cache-clear:{self.name}")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _clear_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            logger.debug(f"Clearing {self.name} cache ({len(self)} entries)")
            self.clear()
