"""Redis pub/sub backed presence registry for multi-instance deployments.

Session and room bookkeeping stays local to each process. Every room emission
is delivered straight to this process's sessions and then published on one
shared channel; the other instances listen on that channel and deliver the
frame to their own sessions in the target room. An instance ignores its own
messages when they come back from the bus.

Constraints:
- Ordering across instances is only Redis' per-channel publish order.
- Publishing is fire-and-forget. If Redis is unavailable the failure is
  logged and clients on other instances catch up by re-fetching.
- A dropped subscription is re-established with exponential backoff; while
  it is down the registry reports itself unhealthy.
"""

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import uuid4

from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from estate_chat.realtime.presence import InMemoryPresenceRegistry

if TYPE_CHECKING:
    from redis.asyncio.client import PubSub

logger = logging.getLogger(__name__)

# Seconds between resubscribe attempts, doubling up to the maximum
RECONNECT_INITIAL_DELAY = 0.5
RECONNECT_MAX_DELAY = 30.0


class RedisPresenceRegistry(InMemoryPresenceRegistry):
    """Presence registry fanning room emissions out through Redis pub/sub."""

    def __init__(self, redis: "AsyncRedis[str]", channel: str) -> None:
        super().__init__()
        self._redis = redis
        self._channel = channel
        self._instance_id = uuid4().hex
        self._pubsub: Optional["PubSub"] = None
        self._subscribed = False
        self._listener: Optional["asyncio.Task[None]"] = None

    @classmethod
    def from_url(cls, url: str, channel: str) -> "RedisPresenceRegistry":
        return cls(AsyncRedis.from_url(url, decode_responses=True), channel)

    @property
    def backend(self) -> str:
        return "redis"

    @property
    def is_listening(self) -> bool:
        return (
            self._subscribed
            and self._listener is not None
            and not self._listener.done()
        )

    @property
    def is_healthy(self) -> bool:
        return self.is_listening

    async def start(self) -> None:
        if self._listener is not None and not self._listener.done():
            return
        await self._subscribe()
        self._listener = asyncio.create_task(self._listen())
        logger.info(
            "Presence instance %s subscribed to %s", self._instance_id, self._channel
        )

    async def stop(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self._channel)
            await self._pubsub.aclose()
            self._pubsub = None
        self._subscribed = False
        await self._redis.aclose()
        logger.info("Presence instance %s stopped", self._instance_id)

    async def dispatch(
        self, room_id: str, frame: Dict[str, Any], exclude_identity: Optional[str]
    ) -> None:
        await self.deliver_local(room_id, frame, exclude_identity)
        payload = json.dumps(
            {
                "origin": self._instance_id,
                "room": room_id,
                "exclude": exclude_identity,
                "frame": frame,
            },
            default=str,
        )
        try:
            await self._redis.publish(self._channel, payload)
        except RedisError as e:
            logger.error(
                "Failed to publish '%s' to room %s, only local sessions got it: %s",
                frame.get("event"),
                room_id,
                e,
            )

    async def handle_bus_message(self, raw: str) -> None:
        """Deliver one message received from the shared channel."""
        try:
            envelope = json.loads(raw)
            origin = envelope.get("origin")
            room_id = envelope["room"]
            frame = envelope["frame"]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Dropping malformed presence bus message: %s", e)
            return
        if origin == self._instance_id:
            # Already delivered locally by dispatch
            return
        await self.deliver_local(room_id, frame, envelope.get("exclude"))

    async def _subscribe(self) -> None:
        self._pubsub = self._redis.pubsub()
        await self._pubsub.subscribe(self._channel)
        self._subscribed = True

    async def _drop_subscription(self) -> None:
        pubsub, self._pubsub = self._pubsub, None
        self._subscribed = False
        if pubsub is None:
            return
        try:
            await pubsub.aclose()
        except RedisError as e:
            logger.warning("Failed to close presence bus subscription: %s", e)

    async def _listen(self) -> None:
        delay = RECONNECT_INITIAL_DELAY
        while True:
            try:
                if self._pubsub is None:
                    await self._subscribe()
                    logger.info(
                        "Presence instance %s resubscribed to %s",
                        self._instance_id,
                        self._channel,
                    )
                    delay = RECONNECT_INITIAL_DELAY
                assert self._pubsub is not None  # nosec B101
                async for message in self._pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    await self.handle_bus_message(message["data"])
                logger.warning("Presence bus subscription ended")
            except RedisError:
                logger.exception(
                    "Presence bus listener lost its subscription, retrying in %.1fs",
                    delay,
                )
            await self._drop_subscription()
            await asyncio.sleep(delay)
            delay = min(delay * 2, RECONNECT_MAX_DELAY)
