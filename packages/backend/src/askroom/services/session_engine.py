"""Session engine — every authoritative room state transition.

Learn: This is the CORE of the backend. Each operation:
1. Reads the current snapshot (NotFound if the room is gone)
2. Checks authorization (owner-only mark/close, attendee-only ask/vote)
3. Checks idempotency (re-join, duplicate question text, repeat close)
4. Applies ONE atomic store call, never read-modify-write

The engine knows nothing about sockets or the fabric; the dispatcher
calls it and decides who hears about the result.

Room lifecycle:
  active → closed → (grace window) → deleted

A closed room stays readable for close_grace_seconds so clients that
are still catching up see status=closed instead of "not found". After
that it is deleted: by a timer in the process that closed it, or lazily
by whichever process next reads it (the timer dies with its process).

Every store call is bounded by store_timeout_seconds; a slow or broken
store surfaces as UnavailableError, never as a hung request.
"""

import asyncio
import secrets
import string
import weakref
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from askroom.errors import (
    DuplicateError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
    RoomCodeTakenError,
    UnavailableError,
)
from askroom.events.types import MARK_ACTIONS
from askroom.schemas.room import (
    Attendee,
    QuestionRead,
    RoomRead,
    RoomStatus,
    RoomSummary,
)
from askroom.store.base import SessionStore, normalize_question_text

logger = structlog.get_logger()

T = TypeVar("T")

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 10
MAX_SESSION_NAME_LENGTH = 100
MAX_QUESTION_LENGTH = 500

CLOSED_MESSAGE = "Session has been closed"


def generate_room_code(length: int = 6) -> str:
    """Random room code, e.g. "K7Q2ZD". 36^6 ≈ 2.2 billion codes."""
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(length))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════
# Results
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class RoomChange:
    """Room snapshot plus whether the call actually changed anything.

    Learn: Idempotent operations (re-join, leave twice, close twice)
    return changed=False so the caller can skip the broadcast.
    """
    room: RoomRead
    changed: bool


@dataclass(frozen=True)
class QuestionResult:
    question: QuestionRead
    room: RoomRead


# ═══════════════════════════════════════════════════════════
# Engine
# ═══════════════════════════════════════════════════════════


class SessionEngine:
    """Validated, idempotent room operations over a SessionStore."""

    def __init__(
        self,
        store: SessionStore,
        *,
        room_code_length: int = 6,
        close_grace_seconds: float = 5.0,
        store_timeout_seconds: float = 5.0,
        code_factory: Callable[[int], str] = generate_room_code,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.room_code_length = room_code_length
        self.close_grace = timedelta(seconds=close_grace_seconds)
        self.store_timeout = store_timeout_seconds
        self._code_factory = code_factory
        self._clock = clock
        self._room_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )
        self._pending_deletes: set[asyncio.Task] = set()

    # ─── Plumbing ─────────────────────────────────────────

    async def _call(self, awaitable: Awaitable[T]) -> T:
        """Run a store call under the store timeout."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.store_timeout)
        except asyncio.TimeoutError:
            logger.warning("askroom.store_timeout", timeout=self.store_timeout)
            raise UnavailableError("Session store timed out. Please try again.")

    def room_lock(self, room_id: str) -> asyncio.Lock:
        """Per-room lock, held by the dispatcher around mutate + broadcast.

        Learn: Keeps commit order == publish order for one room inside this
        process. Rooms never wait on each other. Locks are weakly held, so
        an idle room's lock disappears on its own.
        """
        lock = self._room_locks.get(room_id)
        if lock is None:
            lock = asyncio.Lock()
            self._room_locks[room_id] = lock
        return lock

    def _grace_expired(self, room: RoomRead) -> bool:
        return (
            room.session_status == "closed"
            and room.closed_at is not None
            and self._clock() >= room.closed_at + self.close_grace
        )

    async def _require_room(self, room_id: str) -> RoomRead:
        room = await self._call(self.store.get_room(room_id))
        if room is None:
            raise NotFoundError("Session not found")
        if self._grace_expired(room):
            await self._purge(room_id)
            raise NotFoundError("Session not found")
        return room

    async def _purge(self, room_id: str) -> bool:
        try:
            deleted = await self._call(self.store.delete_room(room_id))
        except UnavailableError:
            logger.warning("askroom.room_delete_failed", room_id=room_id)
            return False
        if deleted:
            logger.info("askroom.room_deleted", room_id=room_id)
        return deleted

    @staticmethod
    def _require_question(room: RoomRead, question_id: str) -> QuestionRead:
        question = room.find_question(question_id)
        if question is None:
            raise NotFoundError("Question not found")
        return question

    @staticmethod
    def _require_active(room: RoomRead) -> None:
        if room.session_status == "closed":
            raise ForbiddenError(CLOSED_MESSAGE)

    # ─── Create ───────────────────────────────────────────

    async def create_room(self, name: str, owner_id: str) -> RoomRead:
        """Open a new active room with a fresh code.

        Learn: Codes are random, not sequential. On the rare collision the
        store refuses the insert and we simply draw another code.
        """
        name = (name or "").strip()
        owner_id = (owner_id or "").strip()
        if not name or not owner_id:
            raise InvalidArgumentError("Session name and owner are required")
        if len(name) > MAX_SESSION_NAME_LENGTH:
            raise InvalidArgumentError(
                f"Session name must be at most {MAX_SESSION_NAME_LENGTH} characters"
            )

        for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
            code = self._code_factory(self.room_code_length)
            try:
                room = await self._call(self.store.create_room(code, name, owner_id))
            except RoomCodeTakenError:
                logger.info("askroom.room_code_collision", room_id=code, attempt=attempt)
                continue
            logger.info("askroom.room_created", room_id=room.room_id, owner=owner_id)
            return room

        raise UnavailableError("Could not allocate a room code. Please try again.")

    # ─── Membership ───────────────────────────────────────

    async def join_room(self, room_id: str, attendee: Attendee) -> RoomChange:
        """Add attendee to the room (set semantics). The owner is never added."""
        room = await self._require_room(room_id)
        if attendee.id == room.owner:
            return RoomChange(room=room, changed=False)
        self._require_active(room)

        room, added = await self._call(self.store.add_attendee(room_id, attendee))
        if added:
            logger.info("askroom.attendee_joined", room_id=room_id, attendee_id=attendee.id)
        return RoomChange(room=room, changed=added)

    async def leave_room(self, room_id: str, peer_id: str) -> RoomChange:
        """Remove peer from attendees. No-op if they weren't there."""
        await self._require_room(room_id)
        room, removed = await self._call(self.store.remove_attendee(room_id, peer_id))
        if removed:
            logger.info("askroom.attendee_left", room_id=room_id, attendee_id=peer_id)
        return RoomChange(room=room, changed=removed)

    # ─── Questions ────────────────────────────────────────

    async def ask_question(
        self,
        room_id: str,
        text: str,
        author_id: str,
        author_name: str,
    ) -> QuestionResult:
        """Append a question from a current attendee.

        Learn: Duplicates are rejected, not merged: the asker is told to
        upvote the existing question instead. The pre-check here gives the
        common case a cheap answer; the store's unique constraint is what
        actually guarantees it under concurrency.
        """
        text = (text or "").strip()
        if not text:
            raise InvalidArgumentError("Question text cannot be empty")
        if len(text) > MAX_QUESTION_LENGTH:
            raise InvalidArgumentError(
                f"Question must be at most {MAX_QUESTION_LENGTH} characters"
            )

        room = await self._require_room(room_id)
        self._require_active(room)
        if not room.is_attendee(author_id):
            raise ForbiddenError("You must join the session to ask a question")

        normalized = normalize_question_text(text)
        if any(normalize_question_text(q.question_text) == normalized for q in room.questions):
            raise DuplicateError()

        question, room = await self._call(
            self.store.add_question(
                room_id, text=text, author_id=author_id, author_name=author_name
            )
        )
        logger.info("askroom.question_added", room_id=room_id, question_id=question.id)
        return QuestionResult(question=question, room=room)

    async def toggle_vote(self, room_id: str, question_id: str, voter_id: str) -> QuestionResult:
        """Upvote, or take the upvote back if this voter already gave one."""
        room = await self._require_room(room_id)
        self._require_question(room, question_id)
        self._require_active(room)
        if not room.is_attendee(voter_id):
            raise ForbiddenError("You must join the session to vote")

        question, room = await self._call(
            self.store.toggle_vote(room_id, question_id, voter_id)
        )
        logger.debug(
            "askroom.vote_toggled",
            room_id=room_id,
            question_id=question_id,
            up_votes=question.up_votes,
        )
        return QuestionResult(question=question, room=room)

    async def mark_question(
        self,
        room_id: str,
        question_id: str,
        action: str,
        actor_id: str,
    ) -> QuestionResult:
        """Owner sets answered/highlighted on a question."""
        room = await self._require_room(room_id)
        self._require_question(room, question_id)
        if actor_id != room.owner:
            raise ForbiddenError()
        if action not in MARK_ACTIONS:
            raise InvalidArgumentError(
                f"Invalid action. Expected one of: {', '.join(MARK_ACTIONS)}"
            )
        self._require_active(room)

        flag, value = MARK_ACTIONS[action]
        question, room = await self._call(
            self.store.set_question_flag(room_id, question_id, flag, value)
        )
        logger.info(
            "askroom.question_marked",
            room_id=room_id,
            question_id=question_id,
            action=action,
        )
        return QuestionResult(question=question, room=room)

    # ─── Close ────────────────────────────────────────────

    async def close_room(self, room_id: str, actor_id: str) -> RoomChange:
        """Owner closes the room; physical deletion follows the grace window.

        Learn: Closing twice is not an error, but only the first close
        reports changed=True, so sessionClosed goes out exactly once.
        """
        room = await self._require_room(room_id)
        if actor_id != room.owner:
            raise ForbiddenError()

        room, changed = await self._call(self.store.close_room(room_id, self._clock()))
        if changed:
            logger.info("askroom.room_closed", room_id=room_id)
            self._schedule_delete(room_id)
        return RoomChange(room=room, changed=changed)

    def _schedule_delete(self, room_id: str) -> None:
        task = asyncio.create_task(self._delete_after_grace(room_id))
        self._pending_deletes.add(task)
        task.add_done_callback(self._pending_deletes.discard)

    async def _delete_after_grace(self, room_id: str) -> None:
        await asyncio.sleep(self.close_grace.total_seconds())
        await self._purge(room_id)

    # ─── Read ─────────────────────────────────────────────

    async def get_session(self, room_id: str) -> RoomRead:
        return await self._require_room(room_id)

    async def list_rooms(self, status: Optional[RoomStatus] = None) -> list[RoomSummary]:
        rooms = await self._call(self.store.list_rooms(status))
        return [RoomSummary.from_room(r) for r in rooms if not self._grace_expired(r)]

    async def purge_expired_rooms(self) -> int:
        """Delete every closed room whose grace window has passed.

        Learn: Run at startup to clean up after processes that died with
        deletion timers still pending.
        """
        closed = await self._call(self.store.list_rooms("closed"))
        purged = 0
        for room in closed:
            if self._grace_expired(room) and await self._purge(room.room_id):
                purged += 1
        return purged

    async def shutdown(self) -> None:
        """Cancel pending deletion timers (the lazy purge picks them up later)."""
        for task in list(self._pending_deletes):
            task.cancel()
        if self._pending_deletes:
            await asyncio.gather(*self._pending_deletes, return_exceptions=True)
        self._pending_deletes.clear()
