"""Health and room inspection endpoint tests."""

import pytest

from askroom.errors import UnavailableError
from askroom.schemas.room import Attendee


@pytest.mark.asyncio
async def test_health_returns_ok(client):
    """Health endpoint should return server status, version and dependencies."""
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["server"] == "ok"
    assert data["serverId"] == "server-test"
    assert data["store"] == "ok"
    assert data["fabric"] == "ok"
    assert data["connections"] == 0
    assert "version" in data


@pytest.mark.asyncio
async def test_health_degraded_when_store_down(client, store, monkeypatch):
    async def down():
        raise UnavailableError("Session store unavailable")

    monkeypatch.setattr(store, "ping", down)
    data = (await client.get("/api/v1/health")).json()

    assert data["status"] == "degraded"
    assert data["store"] == "error: Session store unavailable"


@pytest.mark.asyncio
async def test_list_rooms(client):
    engine = client.app.state.engine
    one = await engine.create_room("One", "p")
    two = await engine.create_room("Two", "p")
    await engine.join_room(two.room_id, Attendee(id="alice", name="Alice"))

    resp = await client.get("/api/v1/rooms")
    assert resp.status_code == 200
    assert [r["roomId"] for r in resp.json()] == [one.room_id, two.room_id]

    resp = await client.get("/api/v1/rooms", params={"status": "active"})
    summaries = {r["roomId"]: r for r in resp.json()}
    assert summaries[two.room_id]["sessionStatus"] == "active"
    assert summaries[two.room_id]["attendeeCount"] == 1
    assert summaries[one.room_id]["attendeeCount"] == 0

    resp = await client.get("/api/v1/rooms", params={"status": "closed"})
    assert resp.json() == []


@pytest.mark.asyncio
async def test_list_rooms_rejects_unknown_status(client):
    resp = await client.get("/api/v1/rooms", params={"status": "archived"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_room_snapshot(client):
    engine = client.app.state.engine
    room = await engine.create_room("Tech Talk", "presenter")
    await engine.join_room(room.room_id, Attendee(id="alice", name="Alice"))
    await engine.ask_question(room.room_id, "Why?", "alice", "Alice")

    resp = await client.get(f"/api/v1/rooms/{room.room_id.lower()}")
    assert resp.status_code == 200
    data = resp.json()
    assert data["roomId"] == room.room_id
    assert data["attendees"] == [{"id": "alice", "name": "Alice"}]
    [question] = data["questions"]
    assert question["questionText"] == "Why?"
    assert "_id" in question


@pytest.mark.asyncio
async def test_get_missing_room_is_404(client):
    resp = await client.get("/api/v1/rooms/ZZZZZZ")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Session not found"
