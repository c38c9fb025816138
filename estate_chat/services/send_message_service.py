import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from estate_chat.exceptions import StorageError
from estate_chat.models.api.events import ServerEvent
from estate_chat.models.api.messages import MessageKind, MessageResponse
from estate_chat.realtime.broadcast import BroadcastRouter
from estate_chat.realtime.presence import conversation_room, personal_room
from estate_chat.services.conversation_directory import ConversationDirectory
from estate_chat.services.message_store import MessageStore

logger = logging.getLogger(__name__)


class SendMessageService:
    """Service for sending a message into a conversation."""

    def __init__(self, db: AsyncSession, broadcaster: BroadcastRouter):
        self.db = db
        self.broadcaster = broadcaster
        self.directory = ConversationDirectory(db)
        self.store = MessageStore(db)

    async def send_message(
        self,
        conversation_id: UUID,
        sender_id: str,
        body: str,
        kind: MessageKind = MessageKind.TEXT,
    ) -> MessageResponse:
        """
        Main business logic for sending a message:
        1. Verify the sender is a participant
        2. Persist the message and the conversation's last-message fields
        3. Push new-message to the conversation room
        4. Push conversation-updated to every participant's personal room
        5. Push the recomputed unread count to every other participant

        Steps 3-5 run only after the write committed and never fail it.
        """
        # Step 1: Authorization happens before any mutation
        await self.directory.ensure_participant(conversation_id, sender_id)

        # Step 2: Durable write
        message = await self.store.append(conversation_id, sender_id, body, kind)
        logger.debug("Stored message %s in %s", message.id, conversation_id)

        # Steps 3-5: Best-effort live push
        await self._broadcast(message)
        return message

    async def _broadcast(self, message: MessageResponse) -> None:
        try:
            participants = await self.directory.participants_of(message.conversation_id)
        except StorageError:
            logger.exception(
                "Skipping broadcast for message %s: participants unavailable",
                message.id,
            )
            return

        await self.broadcaster.emit_to_room(
            conversation_room(message.conversation_id),
            ServerEvent.NEW_MESSAGE,
            {"conversation_id": message.conversation_id, "message": message},
        )

        for participant in participants:
            await self.broadcaster.emit_to_room(
                personal_room(participant),
                ServerEvent.CONVERSATION_UPDATED,
                {
                    "conversation_id": message.conversation_id,
                    "last_message": message.content,
                    "last_message_at": message.created_at,
                },
            )

        for participant in participants:
            if participant == message.sender_id:
                continue
            await self._push_unread_count(participant)

    async def _push_unread_count(self, identity: str) -> None:
        try:
            count = await self.store.unread_count_for_identity(identity)
        except StorageError:
            logger.exception("Could not recompute unread count for %s", identity)
            return
        await self.broadcaster.emit_to_room(
            personal_room(identity), ServerEvent.UNREAD_COUNT, {"count": count}
        )
