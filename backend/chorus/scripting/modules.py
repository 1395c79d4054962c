"""Native modules exposed to Lua scripts.

Scripts run on a worker thread; every function here is called from that
thread. Anything that needs the event loop (HTTP, database) is submitted
to it with ``run_coroutine_threadsafe`` and waited on, bounded by the
evaluation's cancel flag.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import threading
from collections.abc import Coroutine
from typing import TYPE_CHECKING, Any

import httpx

from chorus.core.errors import GenericError

if TYPE_CHECKING:
    from chorus.core.context import InvocationContext
    from shared.store import Store

TIMEOUT_MESSAGE = "Execution timed out"

# channel_data key namespace for script values
DB_KEY_PREFIX = "script:"


class Cancelled(Exception):
    pass


class ModuleBridge:
    """Per-evaluation state shared by all native modules."""

    def __init__(self, loop: asyncio.AbstractEventLoop, cancel: threading.Event) -> None:
        self.loop = loop
        self.cancel = cancel

    def run(self, coro: Coroutine) -> Any:
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        while True:
            if self.cancel.is_set():
                future.cancel()
                raise Cancelled(TIMEOUT_MESSAGE)
            try:
                return future.result(timeout=0.1)
            except concurrent.futures.TimeoutError:
                continue


class HttpModule:
    def __init__(self, bridge: ModuleBridge, http: httpx.AsyncClient) -> None:
        self.bridge = bridge
        self.http = http

    def _decode(self, response: httpx.Response, fmt: str | None) -> Any:
        if fmt == "json":
            return response.json()
        if fmt not in (None, "plain"):
            raise GenericError(f"unknown response format {fmt!r}")
        return response.text

    def get(self, url: str, fmt: str | None = None) -> Any:
        return self.request("GET", url, None, fmt)

    def request(self, method: str, url: str, body: str | None = None, fmt: str | None = None) -> Any:
        response = self.bridge.run(self.http.request(str(method).upper(), url, content=body))
        return self._decode(response, fmt)


class UtilsModule:
    def __init__(self, bridge: ModuleBridge) -> None:
        self.bridge = bridge

    @staticmethod
    def format(template: str, *args: Any) -> str:
        """Replace each ``{}`` in order with the next argument."""
        pieces = str(template).split("{}")
        out = [pieces[0]]
        for i, piece in enumerate(pieces[1:]):
            out.append(str(args[i]) if i < len(args) else "{}")
            out.append(piece)
        return "".join(out)

    @staticmethod
    def to_int(value: Any) -> int:
        try:
            return int(float(value))
        except (TypeError, ValueError):
            raise GenericError(f"not a number: {value!r}") from None

    def sleep(self, seconds: float) -> None:
        if self.bridge.cancel.wait(float(seconds)):
            raise Cancelled(TIMEOUT_MESSAGE)


class DbModule:
    """Channel-scoped key/value storage for the current invocation."""

    def __init__(self, bridge: ModuleBridge, store: Store, invocation: InvocationContext | None) -> None:
        self.bridge = bridge
        self.store = store
        self.invocation = invocation

    def _channel_id(self) -> int:
        if self.invocation is None:
            raise GenericError("no channel in this context")
        return self.invocation.channel.id

    def get(self, key: str) -> str | None:
        return self.bridge.run(self.store.get_channel_data(self._channel_id(), DB_KEY_PREFIX + key))

    def set(self, key: str, value: Any) -> None:
        if not isinstance(value, str):
            value = json.dumps(value) if isinstance(value, (dict, list)) else str(value)
        self.bridge.run(self.store.set_channel_data(self._channel_id(), DB_KEY_PREFIX + key, value))

    def remove(self, key: str) -> bool:
        return self.bridge.run(self.store.remove_channel_data(self._channel_id(), DB_KEY_PREFIX + key))
