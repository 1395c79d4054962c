"""Shared data models for the chorus services."""

from .channel import Channel, Filter, Token
from .command import Command, Trigger
from .eventsub import EventSubTrigger
from .identifiers import ChannelIdentifier, ChannelPlatform, UserIdentifier, UserPlatform
from .user import User, UserData

__all__ = [
    "Channel",
    "ChannelIdentifier",
    "ChannelPlatform",
    "Command",
    "EventSubTrigger",
    "Filter",
    "Token",
    "Trigger",
    "User",
    "UserData",
    "UserIdentifier",
    "UserPlatform",
]
