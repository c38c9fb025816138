from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence
from uuid import UUID, uuid4

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from estate_chat.models.api.messages import MessageKind, MessageResponse
from estate_chat.models.db.message_model import MessageModel
from estate_chat.models.db.participant_model import ParticipantModel
from estate_chat.repositories.base_repository import BaseRepository
from estate_chat.repositories.conversation_repository import ConversationRepository


class MessageRepository(BaseRepository[MessageModel, MessageResponse]):
    """Repository for message operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, MessageModel)
        self.conversation_repo = ConversationRepository(db)

    async def append(
        self, conversation_id: UUID, sender_id: str, content: str, kind: MessageKind
    ) -> MessageResponse:
        """Insert a message and move the conversation's last-message pointer.

        Both writes share one transaction.
        """
        created_at = datetime.now(timezone.utc)
        db_model = MessageModel(
            id=uuid4(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            kind=kind.value,
            read=False,
            created_at=created_at,
        )
        self.db.add(db_model)
        await self.conversation_repo.touch_last_message(
            conversation_id, content, created_at
        )
        await self.db.commit()
        return self._to_pydantic(db_model)

    async def get_by_conversation(self, conversation_id: UUID) -> List[MessageResponse]:
        """Get all messages for a conversation in creation order."""
        query = (
            self._base_query()
            .where(self.model_class.conversation_id == conversation_id)
            .order_by(self.model_class.created_at, self.model_class.seq)
            # Read flags change through bulk updates that bypass the session
            .execution_options(populate_existing=True)
        )  # type: ignore
        return await self._fetch_all(query)

    async def mark_read(self, conversation_id: UUID, reader_id: str) -> int:
        """Mark every unread message not sent by the reader as read."""
        result = await self.db.execute(
            update(self.model_class)
            .where(
                self.model_class.conversation_id == conversation_id,
                self.model_class.sender_id != reader_id,
                self.model_class.read.is_(False),
            )
            .values(read=True)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def count_unread_for_user(self, user_id: str) -> int:
        """Unread messages addressed to a user across all their conversations."""
        query = (
            select(func.count(self.model_class.seq))
            .join(
                ParticipantModel,
                ParticipantModel.conversation_id == self.model_class.conversation_id,
            )
            .where(
                ParticipantModel.user_id == user_id,
                self.model_class.sender_id != user_id,
                self.model_class.read.is_(False),
            )
        )
        result = await self.db.execute(query)
        return int(result.scalar() or 0)

    async def count_unread_in_conversation(
        self, conversation_id: UUID, user_id: str
    ) -> int:
        query = select(func.count(self.model_class.seq)).where(
            self.model_class.conversation_id == conversation_id,
            self.model_class.sender_id != user_id,
            self.model_class.read.is_(False),
        )
        result = await self.db.execute(query)
        return int(result.scalar() or 0)

    async def count_unread_by_conversation(
        self, conversation_ids: Sequence[UUID], user_id: str
    ) -> Dict[UUID, int]:
        """Per-conversation unread counts for a user, in one grouped query."""
        if not conversation_ids:
            return {}
        query = (
            select(self.model_class.conversation_id, func.count(self.model_class.seq))
            .where(
                self.model_class.conversation_id.in_(list(conversation_ids)),
                self.model_class.sender_id != user_id,
                self.model_class.read.is_(False),
            )
            .group_by(self.model_class.conversation_id)
        )
        result = await self.db.execute(query)
        return {row[0]: int(row[1]) for row in result.all()}

    def _to_pydantic(self, db_model: Any) -> MessageResponse:
        """Convert SQLAlchemy MessageModel to Pydantic MessageResponse."""
        return MessageResponse(
            id=db_model.id,
            conversation_id=db_model.conversation_id,
            sender_id=db_model.sender_id,
            content=db_model.content,
            kind=MessageKind(db_model.kind),
            read=db_model.read,
            created_at=db_model.created_at,
        )
