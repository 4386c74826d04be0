"""WebSocket endpoint tests — the real /ws route through Starlette's TestClient.

Learn: TestClient runs the app's lifespan and speaks the WebSocket
protocol in-process, so these tests exercise accept → register →
dispatch → disconnect exactly as a browser would, on memory backends.
"""

import pytest
from starlette.testclient import TestClient

from askroom.main import create_app
from askroom.realtime.pubsub import MemoryBroadcastFabric, MemoryFabricHub
from askroom.store import MemorySessionStore


@pytest.fixture()
def ws_client(test_settings):
    fabric = MemoryBroadcastFabric(MemoryFabricHub(), server_id=test_settings.server_id)
    app = create_app(test_settings, store=MemorySessionStore(), fabric=fabric)
    with TestClient(app) as client:
        yield client


def _create(ws, name="Tech Talk", owner="presenter"):
    ws.send_json({"type": "create", "payload": {"sessionName": name, "owner": owner}})
    reply = ws.receive_json()
    assert reply["type"] == "sessionCreated"
    return reply["payload"]["session"]


def test_create_over_websocket(ws_client):
    with ws_client.websocket_connect("/ws") as ws:
        session = _create(ws)

    assert len(session["roomId"]) == 6
    assert session["sessionName"] == "Tech Talk"
    assert session["sessionStatus"] == "active"
    assert session["attendees"] == []
    assert session["questions"] == []


def test_malformed_frame_keeps_socket_open(ws_client):
    with ws_client.websocket_connect("/ws") as ws:
        ws.send_text("this is not json")
        assert ws.receive_json() == {
            "type": "error",
            "payload": {"message": "Invalid message format", "code": "INVALID_ARGUMENT"},
        }

        ws.send_json({"type": "ping"})
        assert ws.receive_json()["type"] == "pong"


def test_binary_frames_are_handled(ws_client):
    with ws_client.websocket_connect("/ws") as ws:
        ws.send_bytes(b'{"type": "ping", "payload": {}}')
        assert ws.receive_json() == {"type": "pong", "payload": {}}

        ws.send_bytes(b"not json")
        assert ws.receive_json() == {
            "type": "error",
            "payload": {"message": "Invalid message format", "code": "INVALID_ARGUMENT"},
        }

        ws.send_json({"type": "ping"})
        assert ws.receive_json()["type"] == "pong"


def test_room_flow_between_two_sockets(ws_client):
    with ws_client.websocket_connect("/ws") as presenter:
        room_id = _create(presenter)["roomId"]
        presenter.send_json({"type": "join", "payload": {
            "roomId": room_id, "attendee": {"id": "presenter", "name": "Presenter"},
        }})
        assert presenter.receive_json()["type"] == "sessionJoined"

        with ws_client.websocket_connect("/ws") as alice:
            alice.send_json({"type": "join", "payload": {
                "roomId": room_id, "attendee": {"id": "alice", "name": "Alice"},
            }})
            assert alice.receive_json()["type"] == "sessionJoined"
            joined = presenter.receive_json()
            assert joined["type"] == "attendeeJoined"
            assert joined["payload"]["attendee"] == {"id": "alice", "name": "Alice"}

            alice.send_json({"type": "question", "payload": {
                "roomId": room_id,
                "questionText": "Is this live?",
                "authorId": "alice",
                "authorName": "Alice",
            }})
            added_for_alice = alice.receive_json()
            added_for_presenter = presenter.receive_json()
            assert added_for_alice == added_for_presenter
            assert added_for_alice["type"] == "questionAdded"
            assert added_for_alice["payload"]["question"]["questionText"] == "Is this live?"

        # alice's socket closed: implicit leave
        left = presenter.receive_json()
        assert left["type"] == "attendeeLeft"
        assert left["payload"]["attendee"]["id"] == "alice"
        assert left["payload"]["attendees"] == []


def test_close_notifies_joined_sockets(ws_client):
    with ws_client.websocket_connect("/ws") as presenter, \
            ws_client.websocket_connect("/ws") as alice:
        room_id = _create(presenter)["roomId"]
        alice.send_json({"type": "join", "payload": {
            "roomId": room_id, "attendee": {"id": "alice", "name": "Alice"},
        }})
        alice.receive_json()

        presenter.send_json({"type": "close", "payload": {"roomId": room_id, "ownerId": "presenter"}})

        assert presenter.receive_json()["type"] == "success"
        closed = alice.receive_json()
        assert closed == {
            "type": "sessionClosed",
            "payload": {"roomId": room_id, "message": "Session has been closed by the owner"},
        }
