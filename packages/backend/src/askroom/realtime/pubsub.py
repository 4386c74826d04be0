"""Broadcast fabric — cross-process room event pub/sub.

Learn: Redis pub/sub is fire-and-forget. If no process is listening, the
message is lost. That's fine for room events: the store is the source of
truth and a client can always re-request getSession to catch up.

Channel naming: askroom:room:{room_id}
Every process PSUBSCRIBEs to askroom:room:* and relays what it hears to
the sockets it holds locally. Envelope on the wire:

    {"roomId": "K7Q2ZD", "origin": "server-3f1a9c2e",
     "publishedAt": 1718000000.123, "event": {"type": ..., "payload": ...}}

`origin` is the publishing process's server_id. Redis delivers a
process's own publishes back to it; the broadcaster uses origin to drop
those echoes, since it already delivered them locally.
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from askroom.errors import UnavailableError

logger = structlog.get_logger()


@dataclass(frozen=True)
class FabricMessage:
    room_id: str
    event: dict[str, Any]
    origin: str
    published_at: float


FabricHandler = Callable[[FabricMessage], Awaitable[None]]


class BroadcastFabric(ABC):
    """Publish/subscribe-all capability the RoomBroadcaster depends on."""

    server_id: str

    @abstractmethod
    async def publish(self, room_id: str, event: dict[str, Any]) -> None:
        """Notify every subscribed process (this one included)."""

    @abstractmethod
    async def subscribe_all(self, handler: FabricHandler) -> None:
        """Invoke handler for every message published by any process."""

    @abstractmethod
    async def ping(self) -> None:
        """Raise UnavailableError if the fabric is unreachable."""

    @abstractmethod
    async def close(self) -> None:
        """Stop listening and release connections."""


# ═══════════════════════════════════════════════════════════
# Redis
# ═══════════════════════════════════════════════════════════


async def connect_redis(redis_url: str) -> aioredis.Redis:
    """Create a Redis connection pool and verify it answers."""
    client = aioredis.from_url(
        redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await client.ping()
    return client


class RedisBroadcastFabric(BroadcastFabric):
    """Fabric over Redis PUBLISH / PSUBSCRIBE."""

    def __init__(
        self,
        redis: aioredis.Redis,
        *,
        server_id: str,
        channel_prefix: str = "askroom:room:",
        timeout_seconds: float = 2.0,
        owns_client: bool = True,
    ):
        self._redis = redis
        self.server_id = server_id
        self.channel_prefix = channel_prefix
        self.timeout = timeout_seconds
        self._owns_client = owns_client
        self._pubsub: Optional[aioredis.client.PubSub] = None
        self._listener: Optional[asyncio.Task] = None

    def channel_for(self, room_id: str) -> str:
        return f"{self.channel_prefix}{room_id}"

    async def publish(self, room_id: str, event: dict[str, Any]) -> None:
        payload = json.dumps({
            "roomId": room_id,
            "origin": self.server_id,
            "publishedAt": time.time(),
            "event": event,
        })
        try:
            await asyncio.wait_for(
                self._redis.publish(self.channel_for(room_id), payload),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("askroom.fabric_publish_timeout", room_id=room_id)
            raise UnavailableError("Broadcast fabric timed out")
        except (RedisError, OSError) as e:
            logger.warning("askroom.fabric_publish_failed", room_id=room_id, error=str(e))
            raise UnavailableError("Broadcast fabric unavailable") from e

    async def subscribe_all(self, handler: FabricHandler) -> None:
        self._pubsub = self._redis.pubsub()
        await self._pubsub.psubscribe(f"{self.channel_prefix}*")
        self._listener = asyncio.create_task(self._listen(handler))
        logger.info(
            "askroom.fabric_subscribed",
            pattern=f"{self.channel_prefix}*",
            server_id=self.server_id,
        )

    async def _listen(self, handler: FabricHandler) -> None:
        """Relay fabric messages to handler until cancelled.

        Learn: A bad message or a failing handler is logged and skipped;
        it must never kill the listener, or this process goes deaf to
        every other process. Connection errors back off and retry;
        redis-py re-issues the PSUBSCRIBE when it reconnects.
        """
        while True:
            try:
                async for raw in self._pubsub.listen():
                    if raw.get("type") != "pmessage":
                        continue
                    message = self._decode(raw.get("channel"), raw.get("data"))
                    if message is None:
                        continue
                    try:
                        await handler(message)
                    except Exception:
                        logger.exception(
                            "askroom.fabric_handler_error", room_id=message.room_id
                        )
            except asyncio.CancelledError:
                raise
            except (RedisError, OSError) as e:
                logger.warning("askroom.fabric_listener_error", error=str(e))
                await asyncio.sleep(1.0)

    def _decode(self, channel: Any, data: Any) -> Optional[FabricMessage]:
        if isinstance(channel, bytes):
            channel = channel.decode("utf-8", "replace")
        try:
            envelope = json.loads(data)
        except (TypeError, ValueError):
            logger.warning("askroom.fabric_bad_message", channel=channel)
            return None
        if not isinstance(envelope, dict) or not isinstance(envelope.get("event"), dict):
            logger.warning("askroom.fabric_bad_message", channel=channel)
            return None

        room_id = envelope.get("roomId")
        if not room_id and isinstance(channel, str):
            room_id = channel.removeprefix(self.channel_prefix)
        return FabricMessage(
            room_id=room_id,
            event=envelope["event"],
            origin=str(envelope.get("origin", "")),
            published_at=float(envelope.get("publishedAt") or 0.0),
        )

    async def ping(self) -> None:
        try:
            await asyncio.wait_for(self._redis.ping(), timeout=self.timeout)
        except (asyncio.TimeoutError, RedisError, OSError) as e:
            raise UnavailableError("Broadcast fabric unavailable") from e

    async def close(self) -> None:
        if self._listener:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.punsubscribe()
            await self._pubsub.aclose()
            self._pubsub = None
        if self._owns_client:
            await self._redis.aclose()


# ═══════════════════════════════════════════════════════════
# In-memory (single event loop, several simulated processes)
# ═══════════════════════════════════════════════════════════


class MemoryFabricHub:
    """Stands in for the Redis server: every attached fabric hears every publish."""

    def __init__(self):
        self._handlers: list[FabricHandler] = []

    def attach(self, handler: FabricHandler) -> None:
        self._handlers.append(handler)

    def detach(self, handler: FabricHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def publish(self, message: FabricMessage) -> None:
        for handler in list(self._handlers):
            try:
                await handler(message)
            except Exception:
                logger.exception("askroom.fabric_handler_error", room_id=message.room_id)


class MemoryBroadcastFabric(BroadcastFabric):
    """Fabric over a MemoryFabricHub. One instance per simulated process."""

    def __init__(self, hub: MemoryFabricHub, *, server_id: str):
        self.hub = hub
        self.server_id = server_id
        self._handler: Optional[FabricHandler] = None

    async def publish(self, room_id: str, event: dict[str, Any]) -> None:
        await self.hub.publish(FabricMessage(
            room_id=room_id,
            event=event,
            origin=self.server_id,
            published_at=time.time(),
        ))

    async def subscribe_all(self, handler: FabricHandler) -> None:
        self._handler = handler
        self.hub.attach(handler)

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        if self._handler is not None:
            self.hub.detach(self._handler)
            self._handler = None
