import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from estate_chat.exceptions import StorageError
from estate_chat.models.api.events import ServerEvent
from estate_chat.models.api.messages import MarkReadResponse
from estate_chat.realtime.broadcast import BroadcastRouter
from estate_chat.realtime.presence import conversation_room, personal_room
from estate_chat.services.conversation_directory import ConversationDirectory
from estate_chat.services.message_store import MessageStore

logger = logging.getLogger(__name__)


class MarkConversationReadService:
    """Service for read receipts."""

    def __init__(self, db: AsyncSession, broadcaster: BroadcastRouter):
        self.db = db
        self.broadcaster = broadcaster
        self.directory = ConversationDirectory(db)
        self.store = MessageStore(db)

    async def mark_conversation_read(
        self, conversation_id: UUID, reader_id: str
    ) -> MarkReadResponse:
        """
        Mark a conversation read for the reader:
        1. Verify the reader is a participant
        2. Flip every unread message sent by someone else to read
        3. Tell the other participant(s) through the conversation room
        4. Refresh the reader's unread badge on their other devices
        """
        await self.directory.ensure_participant(conversation_id, reader_id)

        marked = await self.store.mark_read(conversation_id, reader_id)

        await self.broadcaster.emit_to_room(
            conversation_room(conversation_id),
            ServerEvent.MESSAGES_READ,
            {"conversation_id": conversation_id, "reader_id": reader_id},
            exclude_identity=reader_id,
        )

        try:
            count = await self.store.unread_count_for_identity(reader_id)
        except StorageError:
            logger.exception("Could not recompute unread count for %s", reader_id)
        else:
            await self.broadcaster.emit_to_room(
                personal_room(reader_id), ServerEvent.UNREAD_COUNT, {"count": count}
            )

        return MarkReadResponse(conversation_id=conversation_id, marked=marked)
