from typing import List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from estate_chat.exceptions import Forbidden
from estate_chat.models.api.conversations import ConversationSummary
from estate_chat.models.api.messages import MessageResponse
from estate_chat.services.conversation_directory import ConversationDirectory
from estate_chat.services.message_store import MessageStore


class GetConversationMessagesService:
    """Service for reading one conversation and its messages."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.directory = ConversationDirectory(db)
        self.store = MessageStore(db)

    async def get_conversation_messages(
        self, conversation_id: UUID, identity: str
    ) -> List[MessageResponse]:
        """
        Get messages for a specific conversation:

        1. Verify the caller is a participant
        2. Return every message in creation order

        This is the catch-up path for anything missed while offline.
        """
        await self.directory.ensure_participant(conversation_id, identity)
        return await self.store.list_by_conversation(conversation_id)

    async def get_conversation_summary(
        self, conversation_id: UUID, identity: str
    ) -> ConversationSummary:
        """Get one conversation as seen by a participant."""
        await self.directory.ensure_participant(conversation_id, identity)
        conversation = await self.directory.get(conversation_id)
        if conversation is None:
            raise Forbidden()
        unread_count = await self.store.unread_count_in_conversation(
            conversation_id, identity
        )
        return self.directory.summarize(conversation, identity, unread_count)
