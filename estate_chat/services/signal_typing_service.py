from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from estate_chat.models.api.events import ServerEvent
from estate_chat.realtime.broadcast import BroadcastRouter
from estate_chat.realtime.presence import conversation_room
from estate_chat.services.conversation_directory import ConversationDirectory


class SignalTypingService:
    """Advisory typing indicators; never persisted."""

    def __init__(self, db: AsyncSession, broadcaster: BroadcastRouter):
        self.db = db
        self.broadcaster = broadcaster
        self.directory = ConversationDirectory(db)

    async def signal_typing(
        self, conversation_id: UUID, identity: str, is_typing: bool
    ) -> None:
        await self.directory.ensure_participant(conversation_id, identity)
        await self.broadcaster.emit_to_room(
            conversation_room(conversation_id),
            ServerEvent.USER_TYPING,
            {
                "conversation_id": conversation_id,
                "identity": identity,
                "typing": is_typing,
            },
            exclude_identity=identity,
        )
