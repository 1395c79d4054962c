"""Data models for users and user_data tables."""

from __future__ import annotations

from dataclasses import dataclass, fields

from .identifiers import USER_COLUMNS, UserIdentifier

_PLATFORM_BY_COLUMN = {column: platform for platform, column in USER_COLUMNS.items()}


@dataclass
class User:
    """A person, possibly known on several platforms."""

    id: int
    twitch_id: str | None = None
    discord_id: str | None = None
    irc_name: str | None = None
    local_addr: str | None = None
    telegram_id: str | None = None

    def identifiers(self) -> list[UserIdentifier]:
        """All platform identities linked to this user."""
        return [
            UserIdentifier(platform, value)
            for column, platform in _PLATFORM_BY_COLUMN.items()
            if (value := getattr(self, column)) is not None
        ]

    def merged_with(self, other: User) -> User:
        """Return a copy of self with other's ids filling in the gaps."""
        values = {
            f.name: getattr(self, f.name) if getattr(self, f.name) is not None else getattr(other, f.name)
            for f in fields(self)
            if f.name != "id"
        }
        return User(id=self.id, **values)


@dataclass
class UserData:
    """A per-user scratch value."""

    user_id: int
    name: str
    value: str
    public: bool = False
