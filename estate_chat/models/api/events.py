from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class ClientEvent(str, Enum):
    """Events a client may send over the realtime channel."""

    REGISTER = "register"
    JOIN_ROOM = "join-room"
    LEAVE_ROOM = "leave-room"
    TYPING_START = "typing-start"
    TYPING_STOP = "typing-stop"


class ServerEvent(str, Enum):
    """Events the server pushes over the realtime channel."""

    NEW_MESSAGE = "new-message"
    CONVERSATION_UPDATED = "conversation-updated"
    MESSAGES_READ = "messages-read"
    USER_TYPING = "user-typing"
    UNREAD_COUNT = "unread-count"
    REGISTERED = "registered"
    ERROR = "error"


class ClientFrame(BaseModel):
    """Client -> server frame."""

    event: ClientEvent
    data: Dict[str, Any] = Field(default_factory=dict)


class ServerFrame(BaseModel):
    """Server -> client frame."""

    event: ServerEvent
    data: Dict[str, Any] = Field(default_factory=dict)
