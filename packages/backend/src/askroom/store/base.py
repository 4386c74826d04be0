"""Session Store interface — the single source of truth for room state.

Learn: The engine never mutates a snapshot and writes it back. Every
state change is one store call that the store applies atomically:

- add_attendee / remove_attendee   → set add / set remove on attendees
- add_question                     → append, unique on normalized text
- toggle_vote                      → set add or remove + paired ±1 increment
- set_question_flag / close_room   → single-field set

So two peers voting at the same instant, even through different server
processes, can't lose each other's vote. Implementations raise
NotFoundError / DuplicateError / RoomCodeTakenError for domain outcomes
and UnavailableError when the backing service fails.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from askroom.schemas.room import Attendee, QuestionRead, RoomRead, RoomStatus


def normalize_question_text(text: str) -> str:
    """Duplicate-detection key: trimmed and case-folded. Never displayed."""
    return text.strip().casefold()


class SessionStore(ABC):
    """Async store of rooms, attendees, questions and votes."""

    @abstractmethod
    async def create_room(self, room_id: str, name: str, owner_id: str) -> RoomRead:
        """Insert an active room. Raises RoomCodeTakenError if room_id exists."""

    @abstractmethod
    async def get_room(self, room_id: str) -> Optional[RoomRead]:
        """Full snapshot, or None if the room does not exist."""

    @abstractmethod
    async def list_rooms(self, status: Optional[RoomStatus] = None) -> list[RoomRead]:
        """All rooms (optionally filtered by status), oldest first."""

    @abstractmethod
    async def add_attendee(self, room_id: str, attendee: Attendee) -> tuple[RoomRead, bool]:
        """Set-add by attendee id. Returns (room, added)."""

    @abstractmethod
    async def remove_attendee(self, room_id: str, attendee_id: str) -> tuple[RoomRead, bool]:
        """Set-remove by attendee id. Returns (room, removed)."""

    @abstractmethod
    async def add_question(
        self,
        room_id: str,
        *,
        text: str,
        author_id: str,
        author_name: str,
    ) -> tuple[QuestionRead, RoomRead]:
        """Append a question. Raises DuplicateError on normalized-text clash."""

    @abstractmethod
    async def toggle_vote(
        self, room_id: str, question_id: str, voter_id: str
    ) -> tuple[QuestionRead, RoomRead]:
        """Add voter to up_voted_by, or remove if present; up_votes follows.

        Membership is re-checked inside the write: a voter who is no longer
        an attendee gets ForbiddenError.
        """

    @abstractmethod
    async def set_question_flag(
        self, room_id: str, question_id: str, flag: str, value: bool
    ) -> tuple[QuestionRead, RoomRead]:
        """Set `answered` or `highlighted`."""

    @abstractmethod
    async def close_room(self, room_id: str, closed_at: datetime) -> tuple[RoomRead, bool]:
        """Transition active → closed. Returns (room, changed)."""

    @abstractmethod
    async def delete_room(self, room_id: str) -> bool:
        """Physically remove the room and everything in it."""

    @abstractmethod
    async def ping(self) -> None:
        """Raise UnavailableError if the backing service is unreachable."""

    async def close(self) -> None:
        """Release connections. No-op by default."""
