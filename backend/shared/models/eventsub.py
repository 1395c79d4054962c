"""Data model for the eventsub_triggers table."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class EventSubTrigger:
    """An action to run when a Twitch EventSub notification arrives."""

    id: int
    broadcaster_id: str
    event_type: str
    action: str
    subscription_id: str | None = None
    created_at: datetime | None = None
