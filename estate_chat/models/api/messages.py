from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class MessageKind(str, Enum):
    """Content kind of a message body."""

    TEXT = "text"
    IMAGE = "image"  # body is an image reference
    FILE = "file"  # body is a file reference


class SendMessageRequest(BaseModel):
    """Request model for sending a message."""

    content: str = Field(..., description="Message body or media reference")
    kind: MessageKind = Field(default=MessageKind.TEXT, description="Content kind")


class MessageResponse(BaseModel):
    """Response model for message data."""

    id: UUID
    conversation_id: UUID
    sender_id: str
    content: str
    kind: MessageKind
    read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MarkReadResponse(BaseModel):
    conversation_id: UUID
    marked: int  # Diagnostic only


class UnreadCountResponse(BaseModel):
    count: int


class TypingRequest(BaseModel):
    typing: bool = True
