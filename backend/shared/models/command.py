"""Data models for commands and triggers tables."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Command:
    """A user-authored command stored per channel."""

    channel_id: int
    name: str
    action: str
    permissions: int | None = None
    cooldown: int | None = None
    aliases: list[str] = field(default_factory=list)


@dataclass
class Trigger:
    """A phrase that runs a command when a message starts with it.

    The rest of the message after the phrase becomes the arguments.
    """

    channel_id: int
    command_name: str
    phrase: str
