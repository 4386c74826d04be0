"""Pydantic schemas for inbound WebSocket frames.

Learn: Every frame is `{"type": str, "payload": object}`. The envelope is
validated first, then the payload against the model registered for its
type. A payload that fails validation is answered with the model's
`required_message`, the same wording the UI already knows how to show.

Room codes are normalized (trimmed, upper-cased) on the way in so that a
code typed as "ab12cd" still finds room "AB12CD".
"""

import json
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from askroom.errors import InvalidArgumentError
from askroom.schemas.room import Attendee


class Envelope(BaseModel):
    """Outer frame shape shared by inbound and outbound messages."""
    type: str = Field(..., min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)


class InboundPayload(BaseModel):
    """Base for payload models — camelCase keys, trimmed strings."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    required_message: ClassVar[str] = "Invalid message format"


class RoomPayload(InboundPayload):
    room_id: str = Field(..., min_length=1, max_length=32)

    @field_validator("room_id")
    @classmethod
    def normalize_room_id(cls, value: str) -> str:
        return value.upper()


# ─── Per-type payloads ──────────────────────────────────


class CreatePayload(InboundPayload):
    required_message: ClassVar[str] = "Session name and owner are required"

    session_name: str = Field(..., min_length=1, max_length=100)
    owner: str = Field(..., min_length=1, max_length=255)


class JoinPayload(RoomPayload):
    required_message: ClassVar[str] = (
        "Room ID and attendee details (id, name) are required"
    )

    attendee: Attendee


class GetSessionPayload(RoomPayload):
    required_message: ClassVar[str] = "Room ID is required"


class QuestionPayload(RoomPayload):
    required_message: ClassVar[str] = (
        "Room ID, question text, authorId, and authorName are required"
    )

    question_text: str = Field(..., min_length=1)
    author_id: str = Field(..., min_length=1)
    author_name: str = Field(..., min_length=1)


class VotePayload(RoomPayload):
    required_message: ClassVar[str] = (
        "Room ID, question ID, and voter ID are required"
    )

    question_id: str = Field(..., min_length=1)
    voter_id: str = Field(..., min_length=1)


class MarkQuestionPayload(RoomPayload):
    required_message: ClassVar[str] = (
        "Room ID, question ID, action, and user ID are required"
    )

    question_id: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)


class LeavePayload(RoomPayload):
    required_message: ClassVar[str] = "Room ID and attendee ID are required"

    attendee_id: str = Field(..., min_length=1)


class ClosePayload(RoomPayload):
    required_message: ClassVar[str] = "Room ID and owner ID are required"

    owner_id: str = Field(..., min_length=1)


# ─── Parsing helpers ────────────────────────────────────


def parse_envelope(raw: str | bytes) -> Envelope:
    """Decode a text frame into an Envelope or raise InvalidArgumentError."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        raise InvalidArgumentError("Invalid message format")
    if not isinstance(data, dict):
        raise InvalidArgumentError("Invalid message format")
    try:
        return Envelope.model_validate(data)
    except ValidationError:
        raise InvalidArgumentError("Invalid message format")


def parse_payload(model: type[InboundPayload], payload: dict[str, Any]) -> InboundPayload:
    """Validate a payload dict against its model, mapping failures to the model's message."""
    try:
        return model.model_validate(payload)
    except ValidationError:
        raise InvalidArgumentError(model.required_message)


def make_event(message_type: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {"type": message_type, "payload": payload}


def dump_event(event: dict[str, Any]) -> str:
    """Serialize an outbound frame. json.dumps escapes newlines inside strings."""
    return json.dumps(event, separators=(",", ":"))
