"""Realtime broadcast router.

Best-effort, at-most-once live push: a frame reaches the sessions joined to a
room at emit time and nobody else. Nothing is queued for offline recipients;
they recover state by re-fetching from the store.
"""

import logging
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder

from estate_chat.models.api.events import ServerEvent, ServerFrame
from estate_chat.realtime.presence import PresenceRegistry

logger = logging.getLogger(__name__)


class BroadcastRouter:
    """Delivers events to rooms through a presence registry."""

    def __init__(self, registry: PresenceRegistry):
        self.registry = registry

    async def emit_to_room(
        self,
        room_id: str,
        event: ServerEvent,
        payload: Dict[str, Any],
        exclude_identity: Optional[str] = None,
    ) -> None:
        """Fan an event out to a room. Never raises.

        Callers emitting several events await each call in turn, which keeps
        per-session emission order.
        """
        frame = jsonable_encoder(ServerFrame(event=event, data=payload))
        try:
            await self.registry.dispatch(room_id, frame, exclude_identity)
        except Exception:
            logger.exception("Broadcast of '%s' to room %s failed", event.value, room_id)

    async def send_to_session(
        self, session: Any, event: ServerEvent, payload: Dict[str, Any]
    ) -> None:
        """Reply to a single session (acks and error frames)."""
        frame = jsonable_encoder(ServerFrame(event=event, data=payload))
        try:
            await session.send(frame)
        except Exception as e:
            logger.warning(
                "Failed to send '%s' to session %s: %s", event.value, session.id, e
            )
