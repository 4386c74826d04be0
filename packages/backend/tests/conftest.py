"""Test fixtures — in-memory rooms, fake sockets, simulated server processes.

Learn: Testing pattern for the real-time layer:

1. Every test gets a fresh MemorySessionStore (shared state of "the database")
2. A "node" is one simulated server process: its own engine, registry,
   broadcaster and dispatcher, attached to a shared MemoryFabricHub that
   plays the part of Redis
3. FakeConnection records every frame sent to it, so assertions read like
   "this peer received exactly these events"

Two nodes over one store + one hub reproduce the multi-server deployment
inside a single event loop, with no Postgres or Redis needed.
"""

import json
from dataclasses import dataclass
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from askroom.config import Settings
from askroom.main import create_app
from askroom.realtime.broadcaster import RoomBroadcaster
from askroom.realtime.dispatch import MessageDispatcher
from askroom.realtime.pubsub import MemoryBroadcastFabric, MemoryFabricHub
from askroom.realtime.registry import ConnectionRegistry
from askroom.services.session_engine import SessionEngine
from askroom.store import MemorySessionStore


# ─── Fake peer connection ─────────────────────────────────


class FakeConnection:
    """In-memory stand-in for a WebSocketConnection."""

    _counter = 0

    def __init__(self, name: str = "", *, fail_sends: bool = False):
        FakeConnection._counter += 1
        self.id = f"conn-{FakeConnection._counter}-{name}"
        self.open = True
        self.fail_sends = fail_sends
        self.sent: list[str] = []

    @property
    def is_open(self) -> bool:
        return self.open

    async def send_text(self, data: str) -> None:
        if self.fail_sends:
            raise ConnectionResetError("peer went away")
        self.sent.append(data)

    @property
    def events(self) -> list[dict]:
        return [json.loads(frame) for frame in self.sent]

    def of_type(self, message_type: str) -> list[dict]:
        return [e for e in self.events if e["type"] == message_type]

    def last(self) -> dict:
        return self.events[-1]

    def clear(self) -> None:
        self.sent.clear()


# ─── Simulated server process ─────────────────────────────


@dataclass
class Node:
    server_id: str
    engine: SessionEngine
    registry: ConnectionRegistry
    broadcaster: RoomBroadcaster
    dispatcher: MessageDispatcher

    async def send(self, connection: FakeConnection, message_type: str, **payload) -> dict:
        """Dispatch one frame from connection; return the last frame it received."""
        await self.dispatcher.dispatch(
            connection, json.dumps({"type": message_type, "payload": payload})
        )
        return connection.last() if connection.sent else {}

    def connect(self, name: str = "") -> FakeConnection:
        connection = FakeConnection(name)
        self.registry.register(connection)
        return connection


async def make_node(
    store: MemorySessionStore,
    hub: Optional[MemoryFabricHub],
    server_id: str,
    *,
    close_grace_seconds: float = 0.05,
) -> Node:
    registry = ConnectionRegistry()
    fabric = MemoryBroadcastFabric(hub, server_id=server_id) if hub else None
    broadcaster = RoomBroadcaster(registry, fabric)
    await broadcaster.start()
    engine = SessionEngine(store, close_grace_seconds=close_grace_seconds)
    return Node(
        server_id=server_id,
        engine=engine,
        registry=registry,
        broadcaster=broadcaster,
        dispatcher=MessageDispatcher(engine, registry, broadcaster),
    )


# ─── Fixtures ─────────────────────────────────────────────


@pytest.fixture()
def store():
    return MemorySessionStore()


@pytest.fixture()
def hub():
    return MemoryFabricHub()


@pytest_asyncio.fixture()
async def engine(store):
    """Engine with a short grace window so deletion tests stay fast."""
    engine = SessionEngine(store, close_grace_seconds=0.05)
    yield engine
    await engine.shutdown()


@pytest_asyncio.fixture()
async def node(store, hub):
    node = await make_node(store, hub, "server-a")
    yield node
    await node.engine.shutdown()


@pytest_asyncio.fixture()
async def node_pair(store, hub):
    """Two server processes sharing one store and one fabric."""
    a = await make_node(store, hub, "server-a")
    b = await make_node(store, hub, "server-b")
    yield a, b
    await a.engine.shutdown()
    await b.engine.shutdown()


@pytest.fixture()
def test_settings():
    return Settings(
        store_backend="memory",
        fabric_backend="memory",
        server_id="server-test",
        close_grace_seconds=0.05,
        log_level="WARNING",
    )


@pytest_asyncio.fixture()
async def client(test_settings, store):
    """HTTP client against an app wired to memory backends.

    Learn: ASGITransport doesn't run the lifespan, so we enter it
    ourselves; that's what populates app.state with the engine,
    registry and friends.
    """
    hub = MemoryFabricHub()
    fabric = MemoryBroadcastFabric(hub, server_id=test_settings.server_id)
    app = create_app(test_settings, store=store, fabric=fabric)

    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            ac.app = app
            yield ac
