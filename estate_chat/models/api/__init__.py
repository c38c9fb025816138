# API models for request/response contracts
from .conversations import (
    ConversationResponse,
    ConversationSummary,
    ConversationWithMessages,
    OpenConversationRequest,
)
from .envelope import Envelope, ErrorEnvelope
from .events import ClientEvent, ClientFrame, ServerEvent, ServerFrame
from .messages import (
    MarkReadResponse,
    MessageKind,
    MessageResponse,
    SendMessageRequest,
    TypingRequest,
    UnreadCountResponse,
)
from .participants import ParticipantResponse

__all__ = [
    "OpenConversationRequest",
    "ConversationResponse",
    "ConversationSummary",
    "ConversationWithMessages",
    "Envelope",
    "ErrorEnvelope",
    "ClientEvent",
    "ClientFrame",
    "ServerEvent",
    "ServerFrame",
    "MessageKind",
    "SendMessageRequest",
    "MessageResponse",
    "MarkReadResponse",
    "UnreadCountResponse",
    "TypingRequest",
    "ParticipantResponse",
]
