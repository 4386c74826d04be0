"""Pydantic schemas for rooms, attendees and questions.

Learn: These are the snapshots every store returns and every frame
carries. Field names are snake_case in Python and camelCase on the wire
(alias_generator), because the UI client was written against the
camelCase shape: roomId, sessionName, upVotedBy, ...

The question id goes out as `_id`, again what the client expects.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RoomStatus = Literal["active", "closed"]


class WireModel(BaseModel):
    """Base for everything serialized into a frame."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Attendee(WireModel):
    """A peer in a room, unique by id."""
    id: str = Field(..., min_length=1, max_length=255)
    name: str = Field(..., min_length=1, max_length=100)


class QuestionRead(WireModel):
    """A question as seen by room participants.

    up_votes is derived: always len(up_voted_by).
    """
    id: str = Field(..., alias="_id")
    question_text: str
    author_id: str
    author_name: str
    up_votes: int = 0
    up_voted_by: list[str] = Field(default_factory=list)
    answered: bool = False
    highlighted: bool = False
    created_at: datetime


class RoomRead(WireModel):
    """Full room snapshot."""
    room_id: str
    session_name: str
    owner: str
    attendees: list[Attendee] = Field(default_factory=list)
    questions: list[QuestionRead] = Field(default_factory=list)
    session_status: RoomStatus = "active"
    created_at: datetime
    closed_at: Optional[datetime] = None

    def is_attendee(self, peer_id: str) -> bool:
        return any(a.id == peer_id for a in self.attendees)

    def find_question(self, question_id: str) -> Optional[QuestionRead]:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None


class RoomSummary(WireModel):
    """Lightweight room listing entry (no question bodies)."""
    room_id: str
    session_name: str
    owner: str
    session_status: RoomStatus
    attendee_count: int
    question_count: int
    created_at: datetime
    closed_at: Optional[datetime] = None

    @classmethod
    def from_room(cls, room: RoomRead) -> "RoomSummary":
        return cls(
            room_id=room.room_id,
            session_name=room.session_name,
            owner=room.owner,
            session_status=room.session_status,
            attendee_count=len(room.attendees),
            question_count=len(room.questions),
            created_at=room.created_at,
            closed_at=room.closed_at,
        )
