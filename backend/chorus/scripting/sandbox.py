"""Sandboxed Lua evaluation.

Every evaluation gets a fresh ``LuaRuntime`` on a worker thread with the
filesystem, process and Python bridges removed. An instruction-count hook
polls a cancel flag, so a timed-out script stops at its next hook tick
instead of running on in the background.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

import httpx
from lupa import LuaError, LuaRuntime, lua_type

from chorus.core.errors import CommandError, GenericError
from chorus.scripting.modules import (
    TIMEOUT_MESSAGE,
    Cancelled,
    DbModule,
    HttpModule,
    ModuleBridge,
    UtilsModule,
)

if TYPE_CHECKING:
    from chorus.core.context import InvocationContext
    from chorus.scripting.storage import ModuleStorage
    from shared.store import Store

LOGGER = logging.getLogger("LuaSandbox")

# Runs before the script: installs the cancel hook and the module loader,
# then drops everything that reaches outside the sandbox. Once cancelled,
# every hook tick raises and protected calls re-raise on return, so pcall,
# xpcall and coroutines cannot keep a timed-out script alive.
PRELUDE = """
return function(cancelled, fetch_module)
    local sethook, error, load = debug.sethook, error, load
    local raw_pcall, raw_xpcall = pcall, xpcall
    local raw_create, raw_resume = coroutine.create, coroutine.resume
    local loaded = {}

    local function hook()
        if cancelled() then
            error("Execution timed out", 0)
        end
    end

    local function rethrow(...)
        if cancelled() then
            error("Execution timed out", 0)
        end
        return ...
    end

    local function unwrap(ok, ...)
        if not ok then
            error((...), 0)
        end
        return ...
    end

    local function new_coroutine(f)
        local co = raw_create(f)
        sethook(co, hook, "", 1000)
        return co
    end

    sethook(hook, "", 1000)

    pcall = function(...)
        return rethrow(raw_pcall(...))
    end
    xpcall = function(...)
        return rethrow(raw_xpcall(...))
    end
    coroutine.create = new_coroutine
    coroutine.resume = function(...)
        return rethrow(raw_resume(...))
    end
    coroutine.wrap = function(f)
        local co = new_coroutine(f)
        return function(...)
            return unwrap(rethrow(raw_resume(co, ...)))
        end
    end

    require = function(name)
        if loaded[name] == nil then
            local source = fetch_module(name)
            if source == nil then
                error("module not found: " .. tostring(name), 2)
            end
            local chunk, err = load(source, "=" .. name, "t")
            if not chunk then
                error(err, 0)
            end
            local value = chunk(name)
            if value == nil then
                value = true
            end
            loaded[name] = value
        end
        return loaded[name]
    end

    os, io, package, debug, python = nil, nil, nil, nil, nil
    dofile, loadfile, load, loadstring, collectgarbage = nil, nil, nil, nil, nil
end
"""

# per-runtime allocation cap
MAX_MEMORY = 64 * 1024 * 1024


def _deny_attributes(obj: Any, attr_name: str, is_setting: bool) -> str:
    raise AttributeError(f"access to {attr_name!r} is not allowed")


def from_lua(value: Any) -> Any:
    """Convert Lua tables (recursively) into lists and dicts."""
    if lua_type(value) != "table":
        return value
    keys = list(value.keys())
    if keys == list(range(1, len(keys) + 1)):
        return [from_lua(value[k]) for k in keys]
    return {k: from_lua(value[k]) for k in keys}


def to_lua(lua: LuaRuntime, value: Any) -> Any:
    if isinstance(value, dict):
        return lua.table_from({k: to_lua(lua, v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return lua.table_from([to_lua(lua, v) for v in value])
    return value


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, tuple):
        return " ".join(_stringify(v) for v in value if v is not None)
    if lua_type(value) == "table":
        return str(from_lua(value))
    return str(value)


class LuaSandbox:
    def __init__(
        self,
        store: Store,
        storage: ModuleStorage | None = None,
        http: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.store = store
        self.storage = storage
        self.http = http or httpx.AsyncClient(timeout=10.0)
        self.timeout = timeout

    async def evaluate(
        self,
        source: str,
        invocation: InvocationContext | None = None,
        timeout: float | None = None,
    ) -> str:
        """Run *source* and return its printed output and return value.

        Raises ``GenericError`` on Lua errors and on timeout.
        """
        loop = asyncio.get_running_loop()
        cancel = threading.Event()
        bridge = ModuleBridge(loop, cancel)
        modules = self.storage.snapshot() if self.storage is not None else {}

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._execute, source, bridge, modules, invocation),
                timeout or self.timeout,
            )
        except asyncio.TimeoutError:
            cancel.set()
            LOGGER.warning(f"Lua evaluation timed out after {timeout or self.timeout}s")
            raise GenericError(TIMEOUT_MESSAGE) from None

    def _wrap(self, lua: LuaRuntime, func: Callable[..., Any]) -> Callable[..., Any]:
        def call(*args: Any) -> Any:
            return to_lua(lua, func(*(from_lua(a) for a in args)))

        return call

    def _install(
        self,
        lua: LuaRuntime,
        bridge: ModuleBridge,
        invocation: InvocationContext | None,
        output: list[str],
    ) -> None:
        g = lua.globals()
        wrap = self._wrap
        http = HttpModule(bridge, self.http)
        utils = UtilsModule(bridge)
        db = DbModule(bridge, self.store, invocation)

        g.http = lua.table_from({"get": wrap(lua, http.get), "request": wrap(lua, http.request)})
        g.utils = lua.table_from(
            {
                "format": wrap(lua, utils.format),
                "int": wrap(lua, utils.to_int),
                "sleep": wrap(lua, utils.sleep),
            }
        )
        g.db = lua.table_from(
            {"get": wrap(lua, db.get), "set": wrap(lua, db.set), "remove": wrap(lua, db.remove)}
        )
        if invocation is not None:
            g.ctx = lua.table_from(
                {
                    "user": invocation.display_name,
                    "user_id": invocation.user.id,
                    "channel": str(invocation.channel_identifier),
                    "args": lua.table_from(list(invocation.arguments)),
                }
            )

        tostring = g.tostring

        def lua_print(*values: Any) -> None:
            output.append("\t".join(str(tostring(v)) for v in values))

        g.print = lua_print

    def _execute(
        self,
        source: str,
        bridge: ModuleBridge,
        modules: Mapping[str, str],
        invocation: InvocationContext | None,
    ) -> str:
        lua = LuaRuntime(
            register_eval=False,
            register_builtins=False,
            max_memory=MAX_MEMORY,
            unpack_returned_tuples=True,
            attribute_filter=_deny_attributes,
        )
        output: list[str] = []
        self._install(lua, bridge, invocation, output)
        lua.execute(PRELUDE)(bridge.cancel.is_set, modules.get)

        try:
            result = lua.execute(source)
        except CommandError:
            raise
        except (LuaError, Cancelled, httpx.HTTPError, ValueError) as e:
            # callback exceptions may surface as themselves or as LuaError
            if bridge.cancel.is_set():
                raise GenericError(TIMEOUT_MESSAGE) from None
            raise GenericError(f"lua error: {e}") from None

        parts = [line for line in output if line]
        rendered = _stringify(result)
        if rendered:
            parts.append(rendered)
        return " ".join(parts)
