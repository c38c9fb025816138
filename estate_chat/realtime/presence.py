"""Presence and session registry.

Tracks which identities have live connections and which rooms each
connection has joined. A room is either a personal room (``user:<identity>``,
joined by every session on registration) or a conversation room
(``conversation:<id>``, joined while the client has that conversation open).

Registry mutations are synchronous and never await, so a handler cannot be
interleaved halfway through one. State is process-local; see
``redis_presence`` for the multi-instance variant.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Set
from uuid import uuid4

from estate_chat.exceptions import BroadcastDeliveryFailure

logger = logging.getLogger(__name__)

SendCallable = Callable[[Dict[str, Any]], Awaitable[None]]


def personal_room(identity: str) -> str:
    return f"user:{identity}"


def conversation_room(conversation_id: Any) -> str:
    return f"conversation:{conversation_id}"


@dataclass(eq=False)
class Session:
    """One live connection belonging to an identity."""

    identity: str
    send: SendCallable
    id: str = field(default_factory=lambda: uuid4().hex)
    rooms: Set[str] = field(default_factory=set)

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return f"Session(id={self.id!r}, identity={self.identity!r})"


class PresenceRegistry(ABC):
    """Interface the broadcast router and transports depend on."""

    @abstractmethod
    def register_session(self, identity: str, send: SendCallable) -> Session:
        """Create a session and join it to the identity's personal room."""

    @abstractmethod
    def deregister_session(self, session: Session) -> None:
        """Drop a session and every room membership it holds."""

    @abstractmethod
    def join_room(self, session: Session, room_id: str) -> None: ...

    @abstractmethod
    def leave_room(self, session: Session, room_id: str) -> None: ...

    @abstractmethod
    def sessions_for(self, identity: str) -> Set[Session]: ...

    @abstractmethod
    def sessions_in_room(self, room_id: str) -> Set[Session]: ...

    @abstractmethod
    async def dispatch(
        self, room_id: str, frame: Dict[str, Any], exclude_identity: Optional[str]
    ) -> None:
        """Hand a frame to every session in a room, wherever it lives."""

    async def start(self) -> None:
        """Acquire backend resources; no-op for in-process registries."""

    async def stop(self) -> None:
        """Release backend resources."""

    @property
    def backend(self) -> str:
        return "memory"

    @property
    def is_healthy(self) -> bool:
        """False while sessions on other instances cannot be reached."""
        return True

    def is_online(self, identity: str) -> bool:
        return bool(self.sessions_for(identity))


class InMemoryPresenceRegistry(PresenceRegistry):
    """Process-local registry for single-instance deployments."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._by_identity: Dict[str, Set[Session]] = {}
        self._rooms: Dict[str, Set[Session]] = {}

    def register_session(self, identity: str, send: SendCallable) -> Session:
        session = Session(identity=identity, send=send)
        self._sessions[session.id] = session
        self._by_identity.setdefault(identity, set()).add(session)
        self.join_room(session, personal_room(identity))
        logger.info(
            "Registered session %s for %s (%d live)",
            session.id,
            identity,
            len(self._by_identity[identity]),
        )
        return session

    def deregister_session(self, session: Session) -> None:
        if self._sessions.pop(session.id, None) is None:
            return
        for room_id in list(session.rooms):
            self.leave_room(session, room_id)
        identity_sessions = self._by_identity.get(session.identity)
        if identity_sessions is not None:
            identity_sessions.discard(session)
            if not identity_sessions:
                del self._by_identity[session.identity]
        logger.info("Deregistered session %s for %s", session.id, session.identity)

    def join_room(self, session: Session, room_id: str) -> None:
        if session.id not in self._sessions:
            raise KeyError(f"Session {session.id} is not registered")
        self._rooms.setdefault(room_id, set()).add(session)
        session.rooms.add(room_id)

    def leave_room(self, session: Session, room_id: str) -> None:
        members = self._rooms.get(room_id)
        if members is not None:
            members.discard(session)
            if not members:
                del self._rooms[room_id]
        session.rooms.discard(room_id)

    def sessions_for(self, identity: str) -> Set[Session]:
        return set(self._by_identity.get(identity, ()))

    def sessions_in_room(self, room_id: str) -> Set[Session]:
        return set(self._rooms.get(room_id, ()))

    async def dispatch(
        self, room_id: str, frame: Dict[str, Any], exclude_identity: Optional[str]
    ) -> None:
        await self.deliver_local(room_id, frame, exclude_identity)

    async def deliver_local(
        self, room_id: str, frame: Dict[str, Any], exclude_identity: Optional[str]
    ) -> int:
        """Send a frame to this process's sessions in a room.

        Sessions are snapshotted first and sent to one at a time. A failing
        session is logged and skipped. Returns the number of successful sends.
        """
        delivered = 0
        for session in self.sessions_in_room(room_id):
            if exclude_identity is not None and session.identity == exclude_identity:
                continue
            try:
                await session.send(frame)
                delivered += 1
            except Exception as e:
                failure = BroadcastDeliveryFailure(
                    session.id, room_id, str(frame.get("event"))
                )
                logger.warning("%s: %s", failure, e)
        return delivered
