"""Canonical user and channel identifiers.

Both identifiers serialize to a ``platform:id`` string, which is how they are
written in configuration (``ADMIN_USER=twitch:12345``), in chat arguments and
in log lines.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

_DISCORD_MENTION = re.compile(r"<@!?(\d+)>")


class UserPlatform(str, Enum):
    TWITCH = "twitch"
    DISCORD = "discord"
    IRC = "irc"
    TELEGRAM = "telegram"
    LOCAL = "local"


# users table column holding each platform's id
USER_COLUMNS: dict[UserPlatform, str] = {
    UserPlatform.TWITCH: "twitch_id",
    UserPlatform.DISCORD: "discord_id",
    UserPlatform.IRC: "irc_name",
    UserPlatform.TELEGRAM: "telegram_id",
    UserPlatform.LOCAL: "local_addr",
}


@dataclass(frozen=True)
class UserIdentifier:
    """A platform-native user id tagged with its platform."""

    platform: UserPlatform
    id: str

    @classmethod
    def from_str(cls, value: str) -> UserIdentifier:
        """Parse ``platform:id`` or a Discord mention (``<@123>``, ``<@!123>``).

        Raises ``ValueError`` for anything else.
        """
        value = value.strip()
        mention = _DISCORD_MENTION.fullmatch(value)
        if mention:
            return cls(UserPlatform.DISCORD, mention.group(1))

        platform, sep, ident = value.partition(":")
        if not sep or not ident:
            raise ValueError(f"invalid user identifier: {value!r}")
        try:
            return cls(UserPlatform(platform.lower()), ident)
        except ValueError:
            raise ValueError(f"unknown user platform: {platform!r}") from None

    @property
    def column(self) -> str:
        return USER_COLUMNS[self.platform]

    def to_canonical_string(self) -> str:
        return f"{self.platform.value}:{self.id}"

    def __str__(self) -> str:
        return self.to_canonical_string()


class ChannelPlatform(str, Enum):
    TWITCH = "twitch"
    DISCORD_GUILD = "discord_guild"
    IRC = "irc"
    LOCAL = "local"
    TELEGRAM = "telegram"
    ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class ChannelIdentifier:
    """A chat channel on some platform.

    ``display_name`` is cosmetic (Twitch login, Telegram chat title) and is
    excluded from equality and hashing: two identifiers with the same platform
    and id are the same channel whatever name was cached alongside.
    """

    platform: ChannelPlatform
    id: str = ""
    display_name: str | None = field(default=None, compare=False)

    @classmethod
    def anonymous(cls) -> ChannelIdentifier:
        return cls(ChannelPlatform.ANONYMOUS)

    @classmethod
    def from_str(cls, value: str) -> ChannelIdentifier:
        value = value.strip()
        platform, _, ident = value.partition(":")
        try:
            kind = ChannelPlatform(platform.lower())
        except ValueError:
            raise ValueError(f"unknown channel platform: {platform!r}") from None
        if kind is ChannelPlatform.ANONYMOUS:
            return cls.anonymous()
        if not ident:
            raise ValueError(f"invalid channel identifier: {value!r}")
        return cls(kind, ident)

    @property
    def is_anonymous(self) -> bool:
        return self.platform is ChannelPlatform.ANONYMOUS

    def to_canonical_string(self) -> str:
        if self.is_anonymous:
            return self.platform.value
        return f"{self.platform.value}:{self.id}"

    def __str__(self) -> str:
        if self.display_name:
            return f"{self.platform.value}:{self.display_name}"
        return self.to_canonical_string()
