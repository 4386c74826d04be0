"""In-memory Session Store — single process, used for tests and local dev.

Learn: Each method runs start-to-finish without awaiting anything, so
under asyncio it is atomic with respect to every other coroutine on the
loop; no lock is needed. Snapshots are built fresh on every read, so a
caller can never mutate stored state through a returned object.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from askroom.errors import DuplicateError, ForbiddenError, NotFoundError, RoomCodeTakenError
from askroom.schemas.room import Attendee, QuestionRead, RoomRead, RoomStatus
from askroom.store.base import SessionStore, normalize_question_text


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Question:
    id: str
    text: str
    normalized: str
    author_id: str
    author_name: str
    created_at: datetime
    # dict as an ordered set: voter_id -> None
    voters: dict[str, None] = field(default_factory=dict)
    answered: bool = False
    highlighted: bool = False


@dataclass
class _Room:
    room_id: str
    name: str
    owner_id: str
    created_at: datetime
    status: str = "active"
    closed_at: Optional[datetime] = None
    attendees: dict[str, str] = field(default_factory=dict)
    questions: dict[str, _Question] = field(default_factory=dict)


class MemorySessionStore(SessionStore):
    """Dict-backed store with the same semantics as SqlSessionStore."""

    def __init__(self):
        self._rooms: dict[str, _Room] = {}

    # ─── Snapshots ───────────────────────────────────────

    @staticmethod
    def _question(q: _Question) -> QuestionRead:
        voters = list(q.voters)
        return QuestionRead(
            id=q.id,
            question_text=q.text,
            author_id=q.author_id,
            author_name=q.author_name,
            up_votes=len(voters),
            up_voted_by=voters,
            answered=q.answered,
            highlighted=q.highlighted,
            created_at=q.created_at,
        )

    def _room(self, room: _Room) -> RoomRead:
        return RoomRead(
            room_id=room.room_id,
            session_name=room.name,
            owner=room.owner_id,
            attendees=[
                Attendee(id=peer_id, name=name)
                for peer_id, name in room.attendees.items()
            ],
            questions=[self._question(q) for q in room.questions.values()],
            session_status=room.status,
            created_at=room.created_at,
            closed_at=room.closed_at,
        )

    def _require_room(self, room_id: str) -> _Room:
        room = self._rooms.get(room_id)
        if room is None:
            raise NotFoundError("Session not found")
        return room

    @staticmethod
    def _require_question(room: _Room, question_id: str) -> _Question:
        question = room.questions.get(question_id)
        if question is None:
            raise NotFoundError("Question not found")
        return question

    # ─── Rooms ───────────────────────────────────────────

    async def create_room(self, room_id: str, name: str, owner_id: str) -> RoomRead:
        if room_id in self._rooms:
            raise RoomCodeTakenError(room_id)
        room = _Room(room_id=room_id, name=name, owner_id=owner_id, created_at=utcnow())
        self._rooms[room_id] = room
        return self._room(room)

    async def get_room(self, room_id: str) -> Optional[RoomRead]:
        room = self._rooms.get(room_id)
        return self._room(room) if room else None

    async def list_rooms(self, status: Optional[RoomStatus] = None) -> list[RoomRead]:
        rooms = sorted(self._rooms.values(), key=lambda r: r.created_at)
        return [self._room(r) for r in rooms if status is None or r.status == status]

    async def close_room(self, room_id: str, closed_at: datetime) -> tuple[RoomRead, bool]:
        room = self._require_room(room_id)
        if room.status == "closed":
            return self._room(room), False
        room.status = "closed"
        room.closed_at = closed_at
        return self._room(room), True

    async def delete_room(self, room_id: str) -> bool:
        return self._rooms.pop(room_id, None) is not None

    # ─── Attendees ───────────────────────────────────────

    async def add_attendee(self, room_id: str, attendee: Attendee) -> tuple[RoomRead, bool]:
        room = self._require_room(room_id)
        if attendee.id in room.attendees:
            return self._room(room), False
        room.attendees[attendee.id] = attendee.name
        return self._room(room), True

    async def remove_attendee(self, room_id: str, attendee_id: str) -> tuple[RoomRead, bool]:
        room = self._require_room(room_id)
        removed = room.attendees.pop(attendee_id, None) is not None
        return self._room(room), removed

    # ─── Questions ───────────────────────────────────────

    async def add_question(
        self,
        room_id: str,
        *,
        text: str,
        author_id: str,
        author_name: str,
    ) -> tuple[QuestionRead, RoomRead]:
        room = self._require_room(room_id)
        normalized = normalize_question_text(text)
        if any(q.normalized == normalized for q in room.questions.values()):
            raise DuplicateError()
        question = _Question(
            id=uuid.uuid4().hex,
            text=text,
            normalized=normalized,
            author_id=author_id,
            author_name=author_name,
            created_at=utcnow(),
        )
        room.questions[question.id] = question
        return self._question(question), self._room(room)

    async def toggle_vote(
        self, room_id: str, question_id: str, voter_id: str
    ) -> tuple[QuestionRead, RoomRead]:
        room = self._require_room(room_id)
        question = self._require_question(room, question_id)
        if voter_id not in room.attendees:
            raise ForbiddenError("You must join the session to vote")
        if voter_id in question.voters:
            del question.voters[voter_id]
        else:
            question.voters[voter_id] = None
        return self._question(question), self._room(room)

    async def set_question_flag(
        self, room_id: str, question_id: str, flag: str, value: bool
    ) -> tuple[QuestionRead, RoomRead]:
        if flag not in ("answered", "highlighted"):
            raise ValueError(f"Unknown question flag: {flag}")
        room = self._require_room(room_id)
        question = self._require_question(room, question_id)
        setattr(question, flag, value)
        return self._question(question), self._room(room)

    async def ping(self) -> None:
        return None
