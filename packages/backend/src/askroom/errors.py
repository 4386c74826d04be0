"""Room error taxonomy.

Learn: Every failure a requester can cause (or suffer) is one of these.
The WebSocket dispatcher catches RoomError at the request boundary and
turns it into a single `error` frame for the requesting connection only;
the HTTP routes turn NotFoundError into a 404. `message` is what the user
sees, `code` is stable for clients that branch on it.
"""


class RoomError(Exception):
    """Base class for expected, user-reportable failures."""

    code = "ERROR"
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(RoomError):
    """Room or question does not exist (or the room was purged)."""

    code = "NOT_FOUND"
    default_message = "Session not found"


class ForbiddenError(RoomError):
    """Actor is not allowed to perform the operation."""

    code = "FORBIDDEN"
    default_message = "Only session owner can perform this action"


class DuplicateError(RoomError):
    """A question with the same normalized text already exists."""

    code = "DUPLICATE"
    default_message = (
        "A similar question already exists. Please upvote that question instead."
    )


class InvalidArgumentError(RoomError):
    """Malformed frame, missing field, or unsupported action."""

    code = "INVALID_ARGUMENT"
    default_message = "Invalid message format"


class UnavailableError(RoomError):
    """Session store or broadcast fabric unreachable or timed out."""

    code = "UNAVAILABLE"
    default_message = "Service temporarily unavailable. Please try again."


class RoomCodeTakenError(Exception):
    """Raised by a store when a generated room code already exists.

    Internal: the engine regenerates the code, users never see this.
    """
