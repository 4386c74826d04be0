"""Room broadcaster — the one place room events fan out from.

Learn: Two paths, one method:

    deliver(room, event)                       ← event happened HERE
      1. send to every local socket bound to the room
      2. publish to the fabric so sibling processes do step 1 for theirs

    deliver(room, event, originated_remotely=True)   ← came FROM the fabric
      1. send to every local socket bound to the room
      (no step 2, or every process would republish forever)

Redis echoes our own publishes back to us; those are dropped by origin
before they get here, so each socket sees each event once.

Sends are best-effort: a socket that is closing or dead is skipped and
the failure is swallowed. The store write already succeeded; broadcast
is notification layered on top of it.
"""

import asyncio
from typing import Any, Optional

import structlog

from askroom.events.types import ROOM_EVENTS, SESSION_CLOSED
from askroom.realtime.connection import Connection
from askroom.realtime.pubsub import BroadcastFabric, FabricMessage
from askroom.realtime.registry import ConnectionRegistry
from askroom.schemas.messages import dump_event

logger = structlog.get_logger()


class RoomBroadcaster:
    """Local fan-out plus cross-process publish for room events."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        fabric: Optional[BroadcastFabric] = None,
    ):
        self.registry = registry
        self.fabric = fabric

    @property
    def server_id(self) -> Optional[str]:
        return self.fabric.server_id if self.fabric else None

    async def start(self) -> None:
        """Begin relaying fabric messages from other processes."""
        if self.fabric is not None:
            await self.fabric.subscribe_all(self._on_fabric_message)

    # ─── Delivery ─────────────────────────────────────────

    async def deliver(
        self,
        room_id: str,
        event: dict[str, Any],
        *,
        exclude: Optional[Connection] = None,
        originated_remotely: bool = False,
    ) -> int:
        """Send event to the room everywhere. Returns local sends that succeeded.

        Raises UnavailableError if the fabric publish fails; local
        delivery has already happened by then.
        """
        frame = dump_event(event)
        targets = [
            c for c in self.registry.connections_in_room(room_id)
            if c is not exclude
        ]
        results = await asyncio.gather(*(self._send(c, frame) for c in targets))
        sent = sum(results)

        if event.get("type") == SESSION_CLOSED:
            # Nothing else will ever be delivered for this room.
            self.registry.clear_room(room_id)

        logger.debug(
            "askroom.room_delivered",
            room_id=room_id,
            event_type=event.get("type"),
            local=sent,
            remote=originated_remotely,
        )

        if not originated_remotely and self.fabric is not None:
            await self.fabric.publish(room_id, event)
        return sent

    async def send_direct(self, connection: Connection, event: dict[str, Any]) -> bool:
        """Send to exactly one connection (responses to the requester)."""
        return await self._send(connection, dump_event(event))

    async def _send(self, connection: Connection, frame: str) -> bool:
        if not connection.is_open:
            return False
        try:
            await connection.send_text(frame)
            return True
        except Exception as e:
            logger.debug("askroom.send_failed", connection_id=connection.id, error=str(e))
            return False

    # ─── Fabric inbound ───────────────────────────────────

    async def _on_fabric_message(self, message: FabricMessage) -> None:
        if message.origin == self.server_id:
            return  # our own publish, already delivered locally
        if not message.room_id:
            logger.warning("askroom.fabric_message_without_room", origin=message.origin)
            return
        if message.event.get("type") not in ROOM_EVENTS:
            logger.warning(
                "askroom.fabric_unknown_event",
                origin=message.origin,
                event_type=message.event.get("type"),
            )
            return
        await self.deliver(message.room_id, message.event, originated_remotely=True)
