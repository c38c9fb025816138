# Presence tracking and live event fan-out
from .broadcast import BroadcastRouter
from .presence import (
    InMemoryPresenceRegistry,
    PresenceRegistry,
    Session,
    conversation_room,
    personal_room,
)
from .redis_presence import RedisPresenceRegistry

__all__ = [
    "BroadcastRouter",
    "InMemoryPresenceRegistry",
    "PresenceRegistry",
    "RedisPresenceRegistry",
    "Session",
    "conversation_room",
    "personal_room",
]
