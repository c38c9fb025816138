from typing import Any, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from estate_chat.models.api.participants import ParticipantResponse
from estate_chat.models.db.participant_model import ParticipantModel
from estate_chat.repositories.base_repository import BaseRepository


class ParticipantRepository(BaseRepository[ParticipantModel, ParticipantResponse]):
    """Repository for conversation membership operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, ParticipantModel)

    async def get_by_conversation(
        self, conversation_id: UUID
    ) -> List[ParticipantResponse]:
        """Get all participants for a conversation."""
        query = (
            self._base_query()
            .where(self.model_class.conversation_id == conversation_id)
            .order_by(self.model_class.user_id)
        )  # type: ignore
        return await self._fetch_all(query)

    async def is_participant(self, conversation_id: UUID, user_id: str) -> bool:
        query = select(self.model_class.user_id).where(
            self.model_class.conversation_id == conversation_id,
            self.model_class.user_id == user_id,
        )
        result = await self.db.execute(query)
        return result.first() is not None

    def _to_pydantic(self, db_model: Any) -> ParticipantResponse:
        """Convert SQLAlchemy ParticipantModel to Pydantic ParticipantResponse."""
        return ParticipantResponse(
            conversation_id=db_model.conversation_id,
            user_id=db_model.user_id,
            joined_at=db_model.joined_at,
        )
