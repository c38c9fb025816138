import logging
from typing import List, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from estate_chat.config import MAX_MESSAGE_LENGTH
from estate_chat.exceptions import InvalidContent, NotParticipant, StorageError
from estate_chat.models.api.messages import MessageKind, MessageResponse
from estate_chat.repositories.message_repository import MessageRepository
from estate_chat.repositories.participant_repository import ParticipantRepository

logger = logging.getLogger(__name__)


class MessageStore:
    """Durable, ordered record of messages and their read state."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.message_repo = MessageRepository(db)
        self.participant_repo = ParticipantRepository(db)

    async def append(
        self,
        conversation_id: UUID,
        sender_id: str,
        body: str,
        kind: MessageKind = MessageKind.TEXT,
    ) -> MessageResponse:
        """
        Persist a new message:

        1. Validate the body for its kind
        2. Verify the sender is a member of the conversation
        3. Insert the message and update the conversation's last-message
           fields in one transaction

        Never retried here; a failed append is reported to the caller.
        """
        content, kind = self._validate_content(body, kind)

        try:
            if not await self.participant_repo.is_participant(
                conversation_id, sender_id
            ):
                raise NotParticipant(
                    f"{sender_id} is not a participant of conversation {conversation_id}"
                )
            return await self.message_repo.append(
                conversation_id, sender_id, content, kind
            )
        except SQLAlchemyError as e:
            await self._rollback()
            logger.exception(
                "Failed to append message to conversation %s", conversation_id
            )
            raise StorageError() from e

    async def list_by_conversation(self, conversation_id: UUID) -> List[MessageResponse]:
        """All messages of a conversation, ascending by creation order."""
        try:
            return await self.message_repo.get_by_conversation(conversation_id)
        except SQLAlchemyError as e:
            logger.exception("Failed to list messages for %s", conversation_id)
            raise StorageError() from e

    async def mark_read(self, conversation_id: UUID, reader_id: str) -> int:
        """Mark messages not sent by the reader as read; idempotent.

        The returned count is diagnostic only.
        """
        try:
            changed = await self.message_repo.mark_read(conversation_id, reader_id)
        except SQLAlchemyError as e:
            await self._rollback()
            logger.exception(
                "Failed to mark conversation %s read for %s",
                conversation_id,
                reader_id,
            )
            raise StorageError() from e
        logger.debug(
            "Marked %d messages read in %s for %s", changed, conversation_id, reader_id
        )
        return changed

    async def unread_count_for_identity(self, identity: str) -> int:
        try:
            return await self.message_repo.count_unread_for_user(identity)
        except SQLAlchemyError as e:
            logger.exception("Failed to count unread messages for %s", identity)
            raise StorageError() from e

    async def unread_count_in_conversation(
        self, conversation_id: UUID, identity: str
    ) -> int:
        try:
            return await self.message_repo.count_unread_in_conversation(
                conversation_id, identity
            )
        except SQLAlchemyError as e:
            logger.exception(
                "Failed to count unread messages in %s for %s",
                conversation_id,
                identity,
            )
            raise StorageError() from e

    def _validate_content(
        self, body: str, kind: MessageKind
    ) -> Tuple[str, MessageKind]:
        """Validate a message body and return the content and kind to store."""
        if not isinstance(kind, MessageKind):
            try:
                kind = MessageKind(kind)
            except ValueError as e:
                raise InvalidContent(f"Unknown message kind: {kind}") from e
        if not isinstance(body, str):
            raise InvalidContent("Message content must be a string")

        content = body.strip()
        if not content:
            if kind is MessageKind.TEXT:
                raise InvalidContent("Message content cannot be empty")
            raise InvalidContent(f"A {kind.value} message requires a reference")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise InvalidContent(
                f"Message content exceeds {MAX_MESSAGE_LENGTH} characters"
            )
        return content, kind

    async def _rollback(self) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback failed")
