"""Repository layer shared by the chorus services."""

from .channel import ChannelRepository
from .command import CommandRepository
from .eventsub import EventSubRepository
from .filter import FilterRepository
from .user import UserRepository

__all__ = [
    "ChannelRepository",
    "CommandRepository",
    "EventSubRepository",
    "FilterRepository",
    "UserRepository",
]
