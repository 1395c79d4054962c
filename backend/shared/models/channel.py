"""Data models for channels, channel_data, filters and tokens tables."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime

from .identifiers import ChannelIdentifier, ChannelPlatform


@dataclass
class Channel:
    """A persisted channel; (platform, channel) is unique."""

    id: int
    platform: str
    channel: str

    @property
    def identifier(self) -> ChannelIdentifier:
        return ChannelIdentifier(ChannelPlatform(self.platform), self.channel)


@dataclass
class Filter:
    """Response filter: a regex that blocks or rewrites outgoing replies.

    When ``block_message`` is set a matching reply is replaced wholesale,
    otherwise every match is substituted with ``replacement``.
    """

    id: int
    channel_id: int
    regex: str
    block_message: str | None = None
    replacement: str | None = None
    _compiled: re.Pattern | None = field(default=None, repr=False, compare=False)

    @property
    def pattern(self) -> re.Pattern:
        if self._compiled is None:
            self._compiled = re.compile(self.regex)
        return self._compiled

    def apply(self, text: str) -> str:
        if not self.pattern.search(text):
            return text
        if self.block_message is not None:
            return self.block_message
        return self.pattern.sub(self.replacement or "", text)


@dataclass
class Token:
    """OAuth token of a Twitch broadcaster that authorised the bot."""

    user_id: str
    token: str
    refresh: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
