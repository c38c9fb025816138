import logging
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from estate_chat.exceptions import Forbidden, InvalidParticipants, StorageError
from estate_chat.models.api.conversations import (
    ConversationResponse,
    ConversationSummary,
)
from estate_chat.repositories.conversation_repository import ConversationRepository
from estate_chat.repositories.message_repository import MessageRepository
from estate_chat.repositories.participant_repository import ParticipantRepository

logger = logging.getLogger(__name__)


def peer_of(conversation: ConversationResponse, identity: str) -> str:
    """The participant of a two-party conversation who is not ``identity``."""
    others = [p for p in conversation.participants if p != identity]
    return others[0] if others else identity


class ConversationDirectory:
    """Find-or-create semantics for the (participants, listing) key."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.conversation_repo = ConversationRepository(db)
        self.participant_repo = ParticipantRepository(db)
        self.message_repo = MessageRepository(db)

    async def get(self, conversation_id: UUID) -> Optional[ConversationResponse]:
        try:
            return await self.conversation_repo.get_by_id(conversation_id)
        except SQLAlchemyError as e:
            logger.exception("Failed to load conversation %s", conversation_id)
            raise StorageError() from e

    async def find_by_participants(
        self, id_a: str, id_b: str, listing_id: Optional[UUID] = None
    ) -> Optional[ConversationResponse]:
        try:
            return await self.conversation_repo.find_by_participants(
                id_a, id_b, listing_id
            )
        except SQLAlchemyError as e:
            logger.exception("Failed to look up conversation for %s/%s", id_a, id_b)
            raise StorageError() from e

    async def create(
        self, listing_id: Optional[UUID], participants: Sequence[str]
    ) -> ConversationResponse:
        """Create a conversation and both membership rows as one unit.

        ``IntegrityError`` from the uniqueness constraint is re-raised as is so
        ``get_or_create`` can resolve the race; other failures become
        ``StorageError``.
        """
        self._validate_participants(participants)
        try:
            conversation = await self.conversation_repo.create_with_participants(
                listing_id, participants
            )
        except IntegrityError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception("Failed to create conversation for %s", participants)
            raise StorageError() from e

        logger.info(
            "Created conversation %s between %s (listing %s)",
            conversation.id,
            " and ".join(participants),
            listing_id,
        )
        return conversation

    async def get_or_create(
        self, id_a: str, id_b: str, listing_id: Optional[UUID] = None
    ) -> ConversationResponse:
        """
        Return the single conversation for (id_a, id_b, listing_id):

        1. Look it up symmetrically
        2. Create it if missing
        3. If a concurrent caller created it first, the unique constraint
           rejects our insert and we re-fetch the winner's row
        """
        self._validate_participants([id_a, id_b])

        conversation = await self.find_by_participants(id_a, id_b, listing_id)
        if conversation:
            return conversation

        try:
            return await self.create(listing_id, [id_a, id_b])
        except IntegrityError as e:
            logger.info(
                "Lost conversation create race for %s/%s (listing %s); re-fetching",
                id_a,
                id_b,
                listing_id,
            )
            conversation = await self.find_by_participants(id_a, id_b, listing_id)
            if conversation is None:
                # Constraint violation that was not the uniqueness race
                logger.error("Conversation create failed: %s", e)
                raise StorageError() from e
            return conversation

    async def is_participant(self, conversation_id: UUID, identity: str) -> bool:
        try:
            return await self.participant_repo.is_participant(conversation_id, identity)
        except SQLAlchemyError as e:
            logger.exception("Failed membership check on %s", conversation_id)
            raise StorageError() from e

    async def ensure_participant(self, conversation_id: UUID, identity: str) -> None:
        """Raise ``Forbidden`` unless ``identity`` belongs to the conversation.

        Unknown conversation ids are indistinguishable from foreign ones.
        """
        if not await self.is_participant(conversation_id, identity):
            raise Forbidden()

    async def participants_of(self, conversation_id: UUID) -> List[str]:
        try:
            participants = await self.participant_repo.get_by_conversation(
                conversation_id
            )
        except SQLAlchemyError as e:
            logger.exception("Failed to load participants of %s", conversation_id)
            raise StorageError() from e
        return [p.user_id for p in participants]

    async def list_for_identity(self, identity: str) -> List[ConversationSummary]:
        """Conversations of ``identity`` with peer and per-conversation unread."""
        try:
            conversations = await self.conversation_repo.list_for_participant(identity)
            unread = await self.message_repo.count_unread_by_conversation(
                [c.id for c in conversations], identity
            )
        except SQLAlchemyError as e:
            logger.exception("Failed to list conversations for %s", identity)
            raise StorageError() from e

        return [
            self.summarize(conversation, identity, unread.get(conversation.id, 0))
            for conversation in conversations
        ]

    @staticmethod
    def summarize(
        conversation: ConversationResponse, identity: str, unread_count: int
    ) -> ConversationSummary:
        return ConversationSummary(
            **conversation.model_dump(),
            peer_id=peer_of(conversation, identity),
            unread_count=unread_count,
        )

    @staticmethod
    def _validate_participants(participants: Sequence[str]) -> None:
        if len(participants) != 2:
            raise InvalidParticipants("A conversation has exactly two participants")
        id_a, id_b = participants
        if not id_a or not id_b:
            raise InvalidParticipants("Participant identities must not be empty")
        if id_a == id_b:
            raise InvalidParticipants("Cannot start a conversation with yourself")
