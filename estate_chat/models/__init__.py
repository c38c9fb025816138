# Export all models
from .api import (
    ConversationResponse,
    ConversationSummary,
    ConversationWithMessages,
    MessageKind,
    MessageResponse,
    OpenConversationRequest,
    ParticipantResponse,
    SendMessageRequest,
)
from .db import (
    ConversationModel,
    MessageModel,
    ParticipantModel,
)

__all__ = [
    # API models
    "OpenConversationRequest",
    "ConversationResponse",
    "ConversationSummary",
    "ConversationWithMessages",
    "MessageKind",
    "SendMessageRequest",
    "MessageResponse",
    "ParticipantResponse",
    # DB models
    "ConversationModel",
    "MessageModel",
    "ParticipantModel",
]
