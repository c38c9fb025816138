import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from estate_chat.exceptions import Forbidden
from estate_chat.models.api.conversations import ConversationWithMessages
from estate_chat.services.conversation_directory import ConversationDirectory
from estate_chat.services.message_store import MessageStore

logger = logging.getLogger(__name__)


class OpenConversationService:
    """Service for opening (get-or-create) a conversation with a peer."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.directory = ConversationDirectory(db)
        self.store = MessageStore(db)

    async def open_conversation(
        self, requester_id: str, peer_id: str, listing_id: Optional[UUID] = None
    ) -> ConversationWithMessages:
        """
        Open the conversation between requester and peer:

        1. Get or create the (requester, peer, listing) conversation
        2. Check both identities are its members
        3. Load its full message history
        4. Return it from the requester's point of view

        Nothing is broadcast; the peer learns about the conversation from its
        first message.
        """
        # Step 1: Find or create
        conversation = await self.directory.get_or_create(
            requester_id, peer_id, listing_id
        )

        # Step 2: Never hand out history of a pair the requester is not part of
        if {requester_id, peer_id} != set(conversation.participants):
            logger.error(
                "Conversation %s resolved for %s/%s has participants %s",
                conversation.id,
                requester_id,
                peer_id,
                conversation.participants,
            )
            raise Forbidden()

        # Step 3: History
        messages = await self.store.list_by_conversation(conversation.id)
        unread_count = await self.store.unread_count_in_conversation(
            conversation.id, requester_id
        )

        # Step 4: Requester's view
        summary = self.directory.summarize(conversation, requester_id, unread_count)
        return ConversationWithMessages(**summary.model_dump(), messages=messages)
