from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from estate_chat.database import get_db
from estate_chat.deps import get_broadcaster, get_current_identity
from estate_chat.models.api.conversations import (
    ConversationSummary,
    ConversationWithMessages,
    OpenConversationRequest,
)
from estate_chat.models.api.envelope import Envelope
from estate_chat.models.api.messages import (
    MarkReadResponse,
    MessageResponse,
    SendMessageRequest,
    TypingRequest,
    UnreadCountResponse,
)
from estate_chat.realtime.broadcast import BroadcastRouter
from estate_chat.services.get_conversation_messages_service import (
    GetConversationMessagesService,
)
from estate_chat.services.list_conversations_service import ListConversationsService
from estate_chat.services.mark_conversation_read_service import (
    MarkConversationReadService,
)
from estate_chat.services.open_conversation_service import OpenConversationService
from estate_chat.services.send_message_service import SendMessageService
from estate_chat.services.signal_typing_service import SignalTypingService

router = APIRouter()


@router.get("", response_model=Envelope[List[ConversationSummary]])
async def list_conversations(
    identity: str = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> Envelope[List[ConversationSummary]]:
    """
    List the caller's conversations.

    Ordered by last message time (newest first, conversations without
    messages last). Each entry names the peer and its unread count.
    """
    service = ListConversationsService(db)
    return Envelope(data=await service.list_conversations(identity))


@router.post("", response_model=Envelope[ConversationWithMessages])
async def open_conversation(
    request: OpenConversationRequest,
    identity: str = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> Envelope[ConversationWithMessages]:
    """Get or create the conversation with a peer, optionally about a listing."""
    service = OpenConversationService(db)
    conversation = await service.open_conversation(
        identity, request.participant_id, request.listing_id
    )
    return Envelope(data=conversation)


@router.get("/unread/count", response_model=Envelope[UnreadCountResponse])
async def get_unread_count(
    identity: str = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> Envelope[UnreadCountResponse]:
    """Unread messages addressed to the caller across all conversations."""
    service = ListConversationsService(db)
    count = await service.unread_count(identity)
    return Envelope(data=UnreadCountResponse(count=count))


@router.get("/{conversation_id}", response_model=Envelope[ConversationSummary])
async def get_conversation(
    conversation_id: UUID,
    identity: str = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> Envelope[ConversationSummary]:
    service = GetConversationMessagesService(db)
    conversation = await service.get_conversation_summary(conversation_id, identity)
    return Envelope(data=conversation)


@router.get(
    "/{conversation_id}/messages", response_model=Envelope[List[MessageResponse]]
)
async def get_conversation_messages(
    conversation_id: UUID,
    identity: str = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> Envelope[List[MessageResponse]]:
    """All messages of a conversation in creation order (participants only)."""
    service = GetConversationMessagesService(db)
    messages = await service.get_conversation_messages(conversation_id, identity)
    return Envelope(data=messages)


@router.post("/{conversation_id}/messages", response_model=Envelope[MessageResponse])
async def send_message(
    conversation_id: UUID,
    request: SendMessageRequest,
    identity: str = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    broadcaster: BroadcastRouter = Depends(get_broadcaster),
) -> Envelope[MessageResponse]:
    """
    Send a message.

    Succeeds once the message is stored; live delivery to the peer is best
    effort and never affects the response.
    """
    service = SendMessageService(db, broadcaster)
    message = await service.send_message(
        conversation_id, identity, request.content, request.kind
    )
    return Envelope(data=message)


@router.put(
    "/{conversation_id}/messages/read", response_model=Envelope[MarkReadResponse]
)
async def mark_conversation_read(
    conversation_id: UUID,
    identity: str = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    broadcaster: BroadcastRouter = Depends(get_broadcaster),
) -> Envelope[MarkReadResponse]:
    """Mark every message the caller received in the conversation as read."""
    service = MarkConversationReadService(db, broadcaster)
    result = await service.mark_conversation_read(conversation_id, identity)
    return Envelope(data=result)


@router.post("/{conversation_id}/typing", response_model=Envelope[None])
async def signal_typing(
    conversation_id: UUID,
    request: TypingRequest,
    identity: str = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    broadcaster: BroadcastRouter = Depends(get_broadcaster),
) -> Envelope[None]:
    service = SignalTypingService(db, broadcaster)
    await service.signal_typing(conversation_id, identity, request.typing)
    return Envelope()
