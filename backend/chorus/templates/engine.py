"""Renders custom command actions.

Actions are Jinja2 templates evaluated in a sandboxed, strict, async
environment. Helpers are plain async callables registered by name (see
:mod:`chorus.templates.helpers`) and exposed as template globals, so a
helper call is a dictionary lookup and nothing more.

Handlebars-style index access (``{{arguments.[0]}}``) is accepted and
rewritten to ``{{arguments[0]}}`` before compiling.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from cachetools import LRUCache  # type: ignore[import-untyped]
from jinja2 import StrictUndefined, Template, TemplateError, TemplateSyntaxError
from jinja2.sandbox import SandboxedEnvironment

from chorus.core.context import InvocationContext
from chorus.core.errors import CommandError, TemplateRenderError
from chorus.templates.helpers import INVOCATION_KEY, HelperRegistry

LOGGER = logging.getLogger("TemplateEngine")

_HANDLEBARS_INDEX = re.compile(r"\.\[(\d+)\]")
_EXPRESSION = re.compile(r"{{.*?}}|{%.*?%}", re.DOTALL)


def normalize_action(source: str) -> str:
    """Rewrite ``.[N]`` path segments inside template tags to ``[N]``."""
    return _EXPRESSION.sub(lambda m: _HANDLEBARS_INDEX.sub(r"[\1]", m.group(0)), source)


class TemplateEngine:
    def __init__(self, helpers: HelperRegistry, cache_size: int = 512) -> None:
        self.helpers = helpers
        self.env = SandboxedEnvironment(
            enable_async=True,
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=False,
        )
        self.env.globals.update(helpers.as_globals())
        self._compiled: LRUCache = LRUCache(maxsize=cache_size)

    def compile(self, source: str) -> Template:
        template = self._compiled.get(source)
        if template is None:
            try:
                template = self.env.from_string(normalize_action(source))
            except TemplateSyntaxError as e:
                raise TemplateRenderError(f"template error: {e.message} (line {e.lineno})") from e
            self._compiled[source] = template
        return template

    async def render(
        self,
        source: str,
        invocation: InvocationContext,
        extra: dict[str, Any] | None = None,
    ) -> str | None:
        """Render an action; empty output means "no response"."""
        template = self.compile(source)
        channel = invocation.channel_identifier
        variables: dict[str, Any] = {
            "arguments": list(invocation.arguments),
            "args": " ".join(invocation.arguments),
            "user": invocation.display_name,
            "user_id": invocation.user.id,
            "channel": str(channel),
            "channel_id": invocation.channel.id,
            "platform": channel.platform.value,
            INVOCATION_KEY: invocation,
        }
        if extra:
            variables.update(extra)

        try:
            output = await template.render_async(variables)
        except CommandError:
            raise
        except TemplateError as e:
            raise TemplateRenderError(f"template error: {e.message or e}") from e
        except Exception as e:
            LOGGER.exception(f"Unexpected error rendering action in {channel}")
            raise TemplateRenderError(f"internal template error: {type(e).__name__}: {e}") from e

        output = output.strip()
        return output or None
