from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.sql import Select

from estate_chat.models.api.conversations import ConversationResponse
from estate_chat.models.db.conversation_model import ConversationModel
from estate_chat.models.db.participant_model import ParticipantModel
from estate_chat.repositories.base_repository import BaseRepository


def ordered_pair(id_a: str, id_b: str) -> Tuple[str, str]:
    """Order-independent key for a pair of participant identities."""
    low, high = sorted([id_a, id_b])
    return low, high


def listing_scope(listing_id: Optional[UUID]) -> str:
    return str(listing_id) if listing_id else ""


class ConversationRepository(BaseRepository[ConversationModel, ConversationResponse]):
    """Repository for conversation operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, ConversationModel)

    def _base_query(self) -> Select:
        # Participants are always needed to build the response model
        return (
            super()
            ._base_query()
            .options(selectinload(self.model_class.participants))
        )

    async def find_by_participants(
        self, id_a: str, id_b: str, listing_id: Optional[UUID] = None
    ) -> Optional[ConversationResponse]:
        """Find the conversation for a participant pair, symmetric in the pair."""
        low, high = ordered_pair(id_a, id_b)
        query = self._base_query().where(
            self.model_class.participant_low == low,
            self.model_class.participant_high == high,
            self.model_class.listing_scope == listing_scope(listing_id),
        )  # type: ignore
        return await self._fetch_one(query)

    async def create_with_participants(
        self, listing_id: Optional[UUID], participants: Sequence[str]
    ) -> ConversationResponse:
        """Create a conversation and its membership rows in one transaction.

        Raises ``IntegrityError`` when the (pair, listing) key already exists;
        the session is left for the caller to roll back.
        """
        now = datetime.now(timezone.utc)
        low, high = ordered_pair(participants[0], participants[1])
        db_model = ConversationModel(
            id=uuid4(),
            listing_id=listing_id,
            participant_low=low,
            participant_high=high,
            listing_scope=listing_scope(listing_id),
            created_at=now,
            updated_at=now,
        )
        self.db.add(db_model)
        self.db.add_all(
            [
                ParticipantModel(
                    conversation_id=db_model.id, user_id=user_id, joined_at=now
                )
                for user_id in participants
            ]
        )
        await self.db.commit()

        # Re-select so participants are eagerly loaded for _to_pydantic
        query = (
            self._base_query()
            .where(self.model_class.id == db_model.id)
            .execution_options(populate_existing=True)
        )  # type: ignore
        created = await self._fetch_one(query)
        if created is None:
            raise RuntimeError(f"Conversation {db_model.id} vanished after commit")
        return created

    async def list_for_participant(self, user_id: str) -> List[ConversationResponse]:
        """List a participant's conversations, most recent activity first.

        Conversations without messages sort after those with messages, then
        by creation time, newest first.
        """
        query = (
            self._base_query()
            .join(
                ParticipantModel,
                ParticipantModel.conversation_id == self.model_class.id,
            )
            .where(ParticipantModel.user_id == user_id)
            .order_by(
                self.model_class.last_message_at.desc().nulls_last(),
                self.model_class.created_at.desc(),
            )
        )  # type: ignore
        return await self._fetch_all(query)

    async def touch_last_message(
        self, conversation_id: UUID, content: str, sent_at: datetime
    ) -> None:
        """Update the denormalized last-message fields. Does not commit."""
        await self.db.execute(
            update(self.model_class)
            .where(self.model_class.id == conversation_id)
            .values(last_message=content, last_message_at=sent_at, updated_at=sent_at)
        )

    def _to_pydantic(self, db_model: Any) -> ConversationResponse:
        """Convert SQLAlchemy ConversationModel to Pydantic ConversationResponse."""
        return ConversationResponse(
            id=db_model.id,
            listing_id=db_model.listing_id,
            participants=sorted(p.user_id for p in db_model.participants),
            last_message=db_model.last_message,
            last_message_at=db_model.last_message_at,
            created_at=db_model.created_at,
            updated_at=db_model.updated_at,
        )
