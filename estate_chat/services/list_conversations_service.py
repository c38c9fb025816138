from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from estate_chat.models.api.conversations import ConversationSummary
from estate_chat.services.conversation_directory import ConversationDirectory
from estate_chat.services.message_store import MessageStore


class ListConversationsService:
    """Service for an identity's conversation list and unread badge."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.directory = ConversationDirectory(db)
        self.store = MessageStore(db)

    async def list_conversations(self, identity: str) -> List[ConversationSummary]:
        """
        List conversations the identity participates in:

        1. Most recent last message first, conversations without messages last
        2. Each entry names the peer and carries its own unread count
        """
        return await self.directory.list_for_identity(identity)

    async def unread_count(self, identity: str) -> int:
        """Unread messages addressed to the identity across all conversations."""
        return await self.store.unread_count_for_identity(identity)
