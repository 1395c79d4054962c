"""Hot-reloadable store of Lua modules backed by a git checkout."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType

from chorus.core.errors import ConfigurationError, GenericError

logger = logging.getLogger(__name__)


class ModuleStorage:
    """Module name -> Lua source, read from ``*.lua`` files in a directory.

    The mapping is rebuilt on every (re)load and swapped in with a single
    assignment; evaluations that already took a :meth:`snapshot` keep
    using the old one.

    Module names are file paths relative to the checkout, without the
    ``.lua`` suffix, with ``/`` replaced by ``.`` (``utils/str.lua`` is
    ``require("utils.str")``).
    """

    def __init__(self, directory: Path, url: str = "") -> None:
        self.directory = Path(directory)
        self.url = url
        self._modules: Mapping[str, str] = MappingProxyType({})
        self._lock = asyncio.Lock()

    def snapshot(self) -> Mapping[str, str]:
        return self._modules

    def __len__(self) -> int:
        return len(self._modules)

    async def _git(self, *args: str, cwd: Path | None = None) -> str:
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            message = stderr.decode(errors="replace").strip()
            logger.error(f"git {args[0]} failed ({process.returncode}): {message}")
            raise GenericError(f"git {args[0]} failed: {message}")
        return stdout.decode().strip()

    async def _head(self) -> str | None:
        if not (self.directory / ".git").exists():
            return None
        return await self._git("rev-parse", "--short", "HEAD", cwd=self.directory)

    def _read_modules(self) -> dict[str, str]:
        modules = {}
        if not self.directory.is_dir():
            return modules
        for path in sorted(self.directory.rglob("*.lua")):
            relative = path.relative_to(self.directory)
            if any(part.startswith(".") for part in relative.parts):
                continue
            name = relative.with_suffix("").as_posix().replace("/", ".")
            modules[name] = path.read_text(encoding="utf-8")
        return modules

    async def load(self) -> None:
        """Clone the repository if needed and read the modules."""
        async with self._lock:
            if self.url and not (self.directory / ".git").exists():
                self.directory.parent.mkdir(parents=True, exist_ok=True)
                await self._git("clone", "--depth", "1", self.url, str(self.directory))
            await self._swap()

    async def update(self) -> str | None:
        """Pull the latest modules.

        Returns the new short commit hash, or None when nothing changed.
        """
        if not self.url:
            raise ConfigurationError("LUA_MODULES_URL")
        async with self._lock:
            before = await self._head()
            if before is None:
                self.directory.parent.mkdir(parents=True, exist_ok=True)
                await self._git("clone", "--depth", "1", self.url, str(self.directory))
            else:
                await self._git("pull", "--ff-only", cwd=self.directory)
            after = await self._head()
            await self._swap()
        if after == before:
            logger.info("Lua modules already up to date")
            return None
        logger.info(f"Lua modules updated {before} -> {after}")
        return after

    async def _swap(self) -> None:
        modules = await asyncio.to_thread(self._read_modules)
        self._modules = MappingProxyType(modules)
        logger.info(f"Loaded {len(modules)} Lua module(s) from {self.directory}")
