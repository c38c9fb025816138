"""WebSocket transport for the realtime channel.

The handler only translates frames: client events become facade calls, and
failures become ``error`` frames on the same socket. The connection stays
open after an error.
"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from estate_chat.auth import InvalidToken, decode_identity
from estate_chat.database import get_session_factory
from estate_chat.exceptions import ChatError, Forbidden
from estate_chat.models.api.events import ClientEvent, ClientFrame, ServerEvent
from estate_chat.realtime.broadcast import BroadcastRouter
from estate_chat.realtime.presence import (
    PresenceRegistry,
    Session,
    conversation_room,
    personal_room,
)
from estate_chat.services.conversation_directory import ConversationDirectory
from estate_chat.services.signal_typing_service import SignalTypingService

logger = logging.getLogger(__name__)

router = APIRouter()

# Application-defined close code for a missing or rejected token
WS_CLOSE_UNAUTHENTICATED = 4001


class RealtimeError(Exception):
    """A client frame was rejected before reaching the facade."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


class RealtimeConnection:
    """One authenticated socket and the presence session it registers."""

    def __init__(
        self,
        websocket: WebSocket,
        identity: str,
        presence: PresenceRegistry,
        broadcaster: BroadcastRouter,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.websocket = websocket
        self.identity = identity
        self.presence = presence
        self.broadcaster = broadcaster
        self.session_factory = session_factory
        self.session: Optional[Session] = None

    async def send(self, frame: Dict[str, Any]) -> None:
        await self.websocket.send_json(frame)

    async def run(self) -> None:
        try:
            while True:
                message = await self.websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                raw = message.get("text")
                if raw is None:
                    await self.send_error(
                        "invalid_event", "Only text frames are accepted"
                    )
                    continue
                await self.handle_raw(raw)
        except WebSocketDisconnect:
            logger.debug("Socket for %s disconnected", self.identity)
        finally:
            if self.session is not None:
                self.presence.deregister_session(self.session)
                self.session = None

    async def handle_raw(self, raw: str) -> None:
        try:
            frame = ClientFrame.model_validate_json(raw)
        except ValidationError:
            await self.send_error("invalid_event", "Malformed or unknown event")
            return

        try:
            await self.dispatch(frame.event, frame.data)
        except RealtimeError as e:
            await self.send_error(e.code, e.message)
        except ChatError as e:
            await self.send_error(e.code, e.message)

    async def dispatch(self, event: ClientEvent, data: Dict[str, Any]) -> None:
        if event == ClientEvent.REGISTER:
            await self.on_register(data)
        elif event == ClientEvent.JOIN_ROOM:
            await self.on_join_room(data)
        elif event == ClientEvent.LEAVE_ROOM:
            self.on_leave_room(data)
        elif event == ClientEvent.TYPING_START:
            await self.on_typing(data, True)
        elif event == ClientEvent.TYPING_STOP:
            await self.on_typing(data, False)

    async def on_register(self, data: Dict[str, Any]) -> None:
        claimed = data.get("identity")
        if claimed != self.identity:
            logger.warning(
                "Rejected register for %r on a socket authenticated as %s",
                claimed,
                self.identity,
            )
            raise Forbidden("Cannot register as another identity")

        if self.session is None:
            self.session = self.presence.register_session(self.identity, self.send)
        await self.send_frame(
            ServerEvent.REGISTERED,
            {"identity": self.identity, "session_id": self.session.id},
        )

    async def on_join_room(self, data: Dict[str, Any]) -> None:
        session = self._require_session()
        room_id = self._room_arg(data)

        if room_id == self.identity:
            self.presence.join_room(session, personal_room(self.identity))
            return

        conversation_id = self._parse_conversation_id(room_id)
        if conversation_id is None:
            logger.warning("%s tried to join foreign room %r", self.identity, room_id)
            raise Forbidden()
        async with self.session_factory() as db:
            await ConversationDirectory(db).ensure_participant(
                conversation_id, self.identity
            )
        self.presence.join_room(session, conversation_room(conversation_id))

    def on_leave_room(self, data: Dict[str, Any]) -> None:
        session = self._require_session()
        room_id = self._room_arg(data)

        if room_id == self.identity:
            self.presence.leave_room(session, personal_room(self.identity))
            return
        conversation_id = self._parse_conversation_id(room_id)
        if conversation_id is not None:
            self.presence.leave_room(session, conversation_room(conversation_id))

    async def on_typing(self, data: Dict[str, Any], is_typing: bool) -> None:
        conversation_id = self._parse_conversation_id(data.get("conversation_id"))
        if conversation_id is None:
            raise RealtimeError("invalid_event", "conversation_id is required")
        async with self.session_factory() as db:
            service = SignalTypingService(db, self.broadcaster)
            await service.signal_typing(conversation_id, self.identity, is_typing)

    async def send_frame(self, event: ServerEvent, payload: Dict[str, Any]) -> None:
        if self.session is not None:
            await self.broadcaster.send_to_session(self.session, event, payload)
        else:
            await self.send({"event": event.value, "data": payload})

    async def send_error(self, code: str, message: str) -> None:
        await self.send_frame(ServerEvent.ERROR, {"code": code, "error": message})

    def _require_session(self) -> Session:
        if self.session is None:
            raise RealtimeError("not_registered", "Send 'register' first")
        return self.session

    @staticmethod
    def _room_arg(data: Dict[str, Any]) -> str:
        room_id = data.get("room_id")
        if not isinstance(room_id, str) or not room_id:
            raise RealtimeError("invalid_event", "room_id is required")
        return room_id

    @staticmethod
    def _parse_conversation_id(value: Any) -> Optional[UUID]:
        if not isinstance(value, str):
            return None
        try:
            return UUID(value)
        except ValueError:
            return None


@router.websocket("/ws")
async def realtime_endpoint(
    websocket: WebSocket,
    token: Optional[str] = None,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> None:
    """
    Realtime channel.

    Authenticates with the ``token`` query parameter, then serves client
    events until the socket closes. Sessions are registered by an explicit
    ``register`` event and removed when the socket goes away.
    """
    try:
        identity = decode_identity(token)
    except InvalidToken as e:
        logger.warning("Rejected socket: %s", e)
        await websocket.close(code=WS_CLOSE_UNAUTHENTICATED)
        return

    await websocket.accept()
    connection = RealtimeConnection(
        websocket,
        identity,
        websocket.app.state.presence,
        websocket.app.state.broadcaster,
        session_factory,
    )
    await connection.run()
