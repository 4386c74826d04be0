"""SQL Session Store — SQLAlchemy 2.0 async over Postgres (asyncpg).

Learn: Every write is one short transaction that first locks the row it
mutates (SELECT ... FOR UPDATE), so writers to the same room or question
queue up in the database instead of racing in Python:

    toggle_vote:  lock question → delete vote row
                  → if nothing deleted: insert vote row
                  → up_votes = up_votes ± 1        (same transaction)

Two processes voting on the same question at once both land, and the
counter can never disagree with the vote rows. Snapshots are read in a
fresh session after commit.

SQLite (used by the tests) ignores FOR UPDATE but serializes writers on
its own. Any SQLAlchemy or socket error surfaces as UnavailableError.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import structlog
from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from askroom.db.models import Base, Question, QuestionVote, Room, RoomAttendee
from askroom.errors import (
    DuplicateError,
    ForbiddenError,
    NotFoundError,
    RoomCodeTakenError,
    UnavailableError,
)
from askroom.schemas.room import Attendee, QuestionRead, RoomRead, RoomStatus
from askroom.store.base import SessionStore, normalize_question_text

logger = structlog.get_logger()

QUESTION_FLAGS = ("answered", "highlighted")


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_question(q: Question) -> QuestionRead:
    voters = [v.voter_id for v in q.votes]
    return QuestionRead(
        id=q.id,
        question_text=q.text,
        author_id=q.author_id,
        author_name=q.author_name,
        up_votes=len(voters),
        up_voted_by=voters,
        answered=q.answered,
        highlighted=q.highlighted,
        created_at=_aware(q.created_at),
    )


def _to_room(room: Room) -> RoomRead:
    return RoomRead(
        room_id=room.room_id,
        session_name=room.name,
        owner=room.owner_id,
        attendees=[Attendee(id=a.peer_id, name=a.name) for a in room.attendees],
        questions=[_to_question(q) for q in room.questions],
        session_status=room.status,
        created_at=_aware(room.created_at),
        closed_at=_aware(room.closed_at),
    )


class SqlSessionStore(SessionStore):
    """Relational store with row-level locking for atomic updates."""

    def __init__(self, engine: AsyncEngine, session_factory: async_sessionmaker[AsyncSession]):
        self._engine = engine
        self._sessions = session_factory

    async def create_schema(self) -> None:
        """Create all tables (tests and ASKROOM_DATABASE_AUTO_CREATE)."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            raise UnavailableError("Session store unavailable") from e

    async def close(self) -> None:
        await self._engine.dispose()

    # ─── Session helpers ─────────────────────────────────

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """One write transaction; commits on success, rolls back on any error."""
        try:
            async with self._sessions() as db:
                async with db.begin():
                    yield db
        except (SQLAlchemyError, OSError) as e:
            logger.warning("askroom.store_error", error=str(e))
            raise UnavailableError("Session store unavailable") from e

    def _room_query(self):
        return select(Room).options(
            selectinload(Room.attendees),
            selectinload(Room.questions).selectinload(Question.votes),
        )

    async def _snapshot(self, room_id: str) -> RoomRead:
        room = await self.get_room(room_id)
        if room is None:
            # Deleted between our commit and the read-back.
            raise NotFoundError("Session not found")
        return room

    async def _question_snapshot(
        self, room_id: str, question_id: str
    ) -> tuple[QuestionRead, RoomRead]:
        room = await self._snapshot(room_id)
        question = room.find_question(question_id)
        if question is None:
            raise NotFoundError("Question not found")
        return question, room

    @staticmethod
    async def _lock_room(db: AsyncSession, room_id: str) -> Room:
        result = await db.execute(
            select(Room).where(Room.room_id == room_id).with_for_update()
        )
        room = result.scalars().first()
        if room is None:
            raise NotFoundError("Session not found")
        return room

    @staticmethod
    async def _lock_question(db: AsyncSession, room_id: str, question_id: str) -> Question:
        result = await db.execute(
            select(Question)
            .where(Question.id == question_id, Question.room_id == room_id)
            .with_for_update()
        )
        question = result.scalars().first()
        if question is None:
            room_exists = await db.scalar(
                select(Room.room_id).where(Room.room_id == room_id)
            )
            raise NotFoundError(
                "Question not found" if room_exists else "Session not found"
            )
        return question

    # ─── Rooms ───────────────────────────────────────────

    async def create_room(self, room_id: str, name: str, owner_id: str) -> RoomRead:
        async with self._transaction() as db:
            if await db.get(Room, room_id) is not None:
                raise RoomCodeTakenError(room_id)
            db.add(Room(room_id=room_id, name=name, owner_id=owner_id, status="active"))
            try:
                await db.flush()
            except IntegrityError:
                raise RoomCodeTakenError(room_id)
        return await self._snapshot(room_id)

    async def get_room(self, room_id: str) -> Optional[RoomRead]:
        try:
            async with self._sessions() as db:
                result = await db.execute(self._room_query().where(Room.room_id == room_id))
                room = result.scalars().first()
                return _to_room(room) if room else None
        except (SQLAlchemyError, OSError) as e:
            logger.warning("askroom.store_error", error=str(e))
            raise UnavailableError("Session store unavailable") from e

    async def list_rooms(self, status: Optional[RoomStatus] = None) -> list[RoomRead]:
        q = self._room_query().order_by(Room.created_at)
        if status:
            q = q.where(Room.status == status)
        try:
            async with self._sessions() as db:
                result = await db.execute(q)
                return [_to_room(r) for r in result.scalars().all()]
        except (SQLAlchemyError, OSError) as e:
            logger.warning("askroom.store_error", error=str(e))
            raise UnavailableError("Session store unavailable") from e

    async def close_room(self, room_id: str, closed_at: datetime) -> tuple[RoomRead, bool]:
        async with self._transaction() as db:
            room = await self._lock_room(db, room_id)
            changed = room.status != "closed"
            if changed:
                room.status = "closed"
                room.closed_at = closed_at
        return await self._snapshot(room_id), changed

    async def delete_room(self, room_id: str) -> bool:
        async with self._transaction() as db:
            question_ids = select(Question.id).where(Question.room_id == room_id)
            await db.execute(
                delete(QuestionVote).where(QuestionVote.question_id.in_(question_ids))
            )
            await db.execute(delete(Question).where(Question.room_id == room_id))
            await db.execute(delete(RoomAttendee).where(RoomAttendee.room_id == room_id))
            result = await db.execute(delete(Room).where(Room.room_id == room_id))
            return result.rowcount > 0

    # ─── Attendees ───────────────────────────────────────

    async def add_attendee(self, room_id: str, attendee: Attendee) -> tuple[RoomRead, bool]:
        async with self._transaction() as db:
            await self._lock_room(db, room_id)
            existing = await db.scalar(
                select(RoomAttendee.id).where(
                    RoomAttendee.room_id == room_id,
                    RoomAttendee.peer_id == attendee.id,
                )
            )
            added = existing is None
            if added:
                db.add(RoomAttendee(room_id=room_id, peer_id=attendee.id, name=attendee.name))
        return await self._snapshot(room_id), added

    async def remove_attendee(self, room_id: str, attendee_id: str) -> tuple[RoomRead, bool]:
        async with self._transaction() as db:
            await self._lock_room(db, room_id)
            result = await db.execute(
                delete(RoomAttendee).where(
                    RoomAttendee.room_id == room_id,
                    RoomAttendee.peer_id == attendee_id,
                )
            )
            removed = result.rowcount > 0
        return await self._snapshot(room_id), removed

    # ─── Questions ───────────────────────────────────────

    async def add_question(
        self,
        room_id: str,
        *,
        text: str,
        author_id: str,
        author_name: str,
    ) -> tuple[QuestionRead, RoomRead]:
        normalized = normalize_question_text(text)
        async with self._transaction() as db:
            await self._lock_room(db, room_id)
            clash = await db.scalar(
                select(Question.id).where(
                    Question.room_id == room_id,
                    Question.normalized_text == normalized,
                )
            )
            if clash is not None:
                raise DuplicateError()
            question = Question(
                room_id=room_id,
                text=text,
                normalized_text=normalized,
                author_id=author_id,
                author_name=author_name,
                up_votes=0,
                answered=False,
                highlighted=False,
            )
            db.add(question)
            try:
                await db.flush()
            except IntegrityError:
                raise DuplicateError()
            question_id = question.id
        return await self._question_snapshot(room_id, question_id)

    async def toggle_vote(
        self, room_id: str, question_id: str, voter_id: str
    ) -> tuple[QuestionRead, RoomRead]:
        async with self._transaction() as db:
            await self._lock_question(db, room_id, question_id)
            is_attendee = await db.scalar(
                select(RoomAttendee.id).where(
                    RoomAttendee.room_id == room_id,
                    RoomAttendee.peer_id == voter_id,
                )
            )
            if is_attendee is None:
                raise ForbiddenError("You must join the session to vote")
            result = await db.execute(
                delete(QuestionVote).where(
                    QuestionVote.question_id == question_id,
                    QuestionVote.voter_id == voter_id,
                )
            )
            if result.rowcount > 0:
                delta = -1
            else:
                db.add(QuestionVote(question_id=question_id, voter_id=voter_id))
                await db.flush()
                delta = 1
            await db.execute(
                update(Question)
                .where(Question.id == question_id)
                .values(up_votes=Question.up_votes + delta)
                .execution_options(synchronize_session=False)
            )
        return await self._question_snapshot(room_id, question_id)

    async def set_question_flag(
        self, room_id: str, question_id: str, flag: str, value: bool
    ) -> tuple[QuestionRead, RoomRead]:
        if flag not in QUESTION_FLAGS:
            raise ValueError(f"Unknown question flag: {flag}")
        async with self._transaction() as db:
            question = await self._lock_question(db, room_id, question_id)
            setattr(question, flag, value)
        return await self._question_snapshot(room_id, question_id)

    # ─── Health ──────────────────────────────────────────

    async def ping(self) -> None:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            raise UnavailableError("Session store unavailable") from e
