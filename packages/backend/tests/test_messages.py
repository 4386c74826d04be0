"""Frame schema tests — parsing inbound frames, serializing snapshots."""

from datetime import datetime, timezone

import pytest

from askroom.errors import InvalidArgumentError
from askroom.schemas.messages import (
    JoinPayload,
    QuestionPayload,
    dump_event,
    make_event,
    parse_envelope,
    parse_payload,
)
from askroom.schemas.room import QuestionRead, RoomRead


def test_envelope_defaults_payload():
    envelope = parse_envelope('{"type": "ping"}')
    assert envelope.type == "ping"
    assert envelope.payload == {}


def test_join_payload_normalizes_room_code():
    payload = parse_payload(JoinPayload, {
        "roomId": " k7q2zd ",
        "attendee": {"id": "alice", "name": "Alice"},
    })
    assert payload.room_id == "K7Q2ZD"
    assert payload.attendee.id == "alice"


def test_question_payload_missing_author():
    with pytest.raises(InvalidArgumentError) as exc:
        parse_payload(QuestionPayload, {"roomId": "K7Q2ZD", "questionText": "Hi?"})
    assert exc.value.message == "Room ID, question text, authorId, and authorName are required"


def test_snapshot_wire_shape():
    created = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    room = RoomRead(
        room_id="K7Q2ZD",
        session_name="Tech Talk",
        owner="presenter",
        questions=[QuestionRead(
            id="q1",
            question_text="Why?",
            author_id="alice",
            author_name="Alice",
            up_votes=1,
            up_voted_by=["bob"],
            created_at=created,
        )],
        created_at=created,
    )

    wire = room.to_wire()

    assert wire["roomId"] == "K7Q2ZD"
    assert wire["sessionName"] == "Tech Talk"
    assert wire["sessionStatus"] == "active"
    assert wire["closedAt"] is None
    assert wire["questions"][0]["_id"] == "q1"
    assert wire["questions"][0]["upVotedBy"] == ["bob"]
    assert "normalizedText" not in wire["questions"][0]


def test_dump_event_is_one_line():
    frame = dump_event(make_event("questionAdded", {"text": "line one\nline two"}))
    assert "\n" not in frame
