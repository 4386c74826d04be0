"""SQL session store tests — SQLAlchemy async over in-memory SQLite.

Learn: Same store contract as the memory store, exercised against a
real SQL engine (aiosqlite + StaticPool so the in-memory database lives
as long as the engine). Postgres adds row locks on top; SQLite
serializes writers by itself, so the semantics under test are the same.
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio

from askroom.db.engine import build_engine, build_session_factory
from askroom.errors import DuplicateError, ForbiddenError, NotFoundError, RoomCodeTakenError
from askroom.schemas.room import Attendee
from askroom.services.session_engine import SessionEngine
from askroom.store.sql import SqlSessionStore


@pytest_asyncio.fixture()
async def sql_store():
    engine = build_engine("sqlite+aiosqlite://")
    store = SqlSessionStore(engine, build_session_factory(engine))
    await store.create_schema()
    yield store
    await store.close()


async def _room_with_attendees(store, *peer_ids):
    room = await store.create_room("ABC123", "Tech Talk", "presenter")
    for peer_id in peer_ids:
        await store.add_attendee(room.room_id, Attendee(id=peer_id, name=peer_id.title()))
    return room.room_id


@pytest.mark.asyncio
async def test_create_and_get(sql_store):
    room = await sql_store.create_room("ABC123", "Tech Talk", "presenter")

    assert room.room_id == "ABC123"
    assert room.session_status == "active"
    assert room.created_at.tzinfo is not None
    assert await sql_store.get_room("ABC123") == room
    assert await sql_store.get_room("NOPE00") is None


@pytest.mark.asyncio
async def test_create_duplicate_code(sql_store):
    await sql_store.create_room("ABC123", "One", "p")
    with pytest.raises(RoomCodeTakenError):
        await sql_store.create_room("ABC123", "Two", "p")
    assert (await sql_store.get_room("ABC123")).session_name == "One"


@pytest.mark.asyncio
async def test_attendees_are_a_set(sql_store):
    room_id = await _room_with_attendees(sql_store)

    _, added = await sql_store.add_attendee(room_id, Attendee(id="alice", name="Alice"))
    room, added_again = await sql_store.add_attendee(room_id, Attendee(id="alice", name="Alice"))

    assert added is True
    assert added_again is False
    assert [a.id for a in room.attendees] == ["alice"]

    room, removed = await sql_store.remove_attendee(room_id, "alice")
    assert removed is True
    assert room.attendees == []
    _, removed_again = await sql_store.remove_attendee(room_id, "alice")
    assert removed_again is False


@pytest.mark.asyncio
async def test_add_attendee_unknown_room(sql_store):
    with pytest.raises(NotFoundError, match="Session not found"):
        await sql_store.add_attendee("NOPE00", Attendee(id="alice", name="Alice"))


@pytest.mark.asyncio
async def test_add_question_and_duplicate(sql_store):
    room_id = await _room_with_attendees(sql_store, "alice")

    question, room = await sql_store.add_question(
        room_id, text="What is async?", author_id="alice", author_name="Alice"
    )
    assert room.questions == [question]
    assert question.up_votes == 0

    with pytest.raises(DuplicateError):
        await sql_store.add_question(
            room_id, text="  WHAT IS ASYNC?", author_id="alice", author_name="Alice"
        )


@pytest.mark.asyncio
async def test_toggle_vote_keeps_count_in_step(sql_store):
    room_id = await _room_with_attendees(sql_store, "alice", "bob")
    question, _ = await sql_store.add_question(
        room_id, text="Why?", author_id="alice", author_name="Alice"
    )

    question, _ = await sql_store.toggle_vote(room_id, question.id, "alice")
    question, _ = await sql_store.toggle_vote(room_id, question.id, "bob")
    assert question.up_votes == 2
    assert question.up_voted_by == ["alice", "bob"]

    question, _ = await sql_store.toggle_vote(room_id, question.id, "alice")
    assert question.up_votes == 1
    assert question.up_voted_by == ["bob"]


@pytest.mark.asyncio
async def test_toggle_vote_unknown_question(sql_store):
    room_id = await _room_with_attendees(sql_store, "alice")
    with pytest.raises(NotFoundError, match="Question not found"):
        await sql_store.toggle_vote(room_id, "missing", "alice")


@pytest.mark.asyncio
async def test_toggle_vote_rechecks_membership(sql_store):
    room_id = await _room_with_attendees(sql_store, "alice", "bob")
    question, _ = await sql_store.add_question(
        room_id, text="Why?", author_id="alice", author_name="Alice"
    )
    await sql_store.remove_attendee(room_id, "bob")

    with pytest.raises(ForbiddenError, match="You must join the session to vote"):
        await sql_store.toggle_vote(room_id, question.id, "bob")

    room = await sql_store.get_room(room_id)
    assert room.questions[0].up_voted_by == []
    assert room.questions[0].up_votes == 0


@pytest.mark.asyncio
async def test_set_question_flag(sql_store):
    room_id = await _room_with_attendees(sql_store, "alice")
    question, _ = await sql_store.add_question(
        room_id, text="Why?", author_id="alice", author_name="Alice"
    )

    question, _ = await sql_store.set_question_flag(room_id, question.id, "highlighted", True)
    assert question.highlighted is True
    assert question.answered is False


@pytest.mark.asyncio
async def test_close_is_monotonic(sql_store):
    room_id = await _room_with_attendees(sql_store)
    closed_at = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    room, changed = await sql_store.close_room(room_id, closed_at)
    assert changed is True
    assert room.session_status == "closed"
    assert room.closed_at == closed_at

    room, changed = await sql_store.close_room(room_id, datetime.now(timezone.utc))
    assert changed is False
    assert room.closed_at == closed_at


@pytest.mark.asyncio
async def test_delete_room_removes_children(sql_store):
    room_id = await _room_with_attendees(sql_store, "alice")
    question, _ = await sql_store.add_question(
        room_id, text="Why?", author_id="alice", author_name="Alice"
    )
    await sql_store.toggle_vote(room_id, question.id, "alice")

    assert await sql_store.delete_room(room_id) is True
    assert await sql_store.get_room(room_id) is None
    assert await sql_store.delete_room(room_id) is False


@pytest.mark.asyncio
async def test_list_rooms_filters_status(sql_store):
    await sql_store.create_room("AAAAAA", "One", "p")
    await sql_store.create_room("BBBBBB", "Two", "p")
    await sql_store.close_room("BBBBBB", datetime.now(timezone.utc))

    assert [r.room_id for r in await sql_store.list_rooms()] == ["AAAAAA", "BBBBBB"]
    assert [r.room_id for r in await sql_store.list_rooms("closed")] == ["BBBBBB"]


@pytest.mark.asyncio
async def test_ping(sql_store):
    await sql_store.ping()


@pytest.mark.asyncio
async def test_engine_over_sql_store(sql_store):
    """The engine's flow runs unchanged on the SQL backend."""
    engine = SessionEngine(sql_store, close_grace_seconds=60)
    room = await engine.create_room("Launch Q&A", "presenter")
    await engine.join_room(room.room_id, Attendee(id="alice", name="Alice"))
    result = await engine.ask_question(room.room_id, "When?", "alice", "Alice")
    await engine.toggle_vote(room.room_id, result.question.id, "alice")
    marked = await engine.mark_question(room.room_id, result.question.id, "answered", "presenter")

    assert marked.question.answered is True
    assert marked.question.up_voted_by == ["alice"]

    closed = await engine.close_room(room.room_id, "presenter")
    assert closed.changed is True
    await engine.shutdown()
