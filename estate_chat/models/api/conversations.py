from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .messages import MessageResponse


class OpenConversationRequest(BaseModel):
    """Request model for opening (get-or-create) a conversation."""

    participant_id: str = Field(
        ..., min_length=1, max_length=128, description="Identity of the peer"
    )
    listing_id: Optional[UUID] = Field(
        default=None, description="Listing the conversation is about, if any"
    )


class ConversationResponse(BaseModel):
    """Response model for conversation data."""

    id: UUID
    listing_id: Optional[UUID]
    participants: List[str]  # Exactly two participant identities
    last_message: Optional[str]
    last_message_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationSummary(ConversationResponse):
    """Conversation as seen by one participant in their list view."""

    peer_id: str
    unread_count: int


class ConversationWithMessages(ConversationSummary):
    messages: List[MessageResponse]
