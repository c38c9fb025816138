from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ParticipantResponse(BaseModel):
    """Response model for participant membership data."""

    conversation_id: UUID
    user_id: str
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True)
