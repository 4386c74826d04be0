"""Wire message type constants.

Learn: Centralizing message types as constants prevents typos and
makes it easy to discover every frame the server accepts or emits.
The UI client consumes exactly the outbound types and produces
exactly the inbound ones.
"""

# ─── Inbound (client → server) ───────────────────────────

CREATE = "create"
JOIN = "join"
GET_SESSION = "getSession"
QUESTION = "question"
VOTE = "vote"
MARK_QUESTION = "markQuestion"
LEAVE = "leave"
CLOSE = "close"
PING = "ping"

# ─── Outbound, requester only (SendDirect) ───────────────

SESSION_CREATED = "sessionCreated"
SESSION_JOINED = "sessionJoined"
SESSION_DATA = "sessionData"
SUCCESS = "success"
ERROR = "error"
PONG = "pong"

# ─── Outbound, whole room (Deliver + fabric) ─────────────

QUESTION_ADDED = "questionAdded"
QUESTION_UPDATED = "questionUpdated"
ATTENDEE_JOINED = "attendeeJoined"
ATTENDEE_LEFT = "attendeeLeft"
SESSION_CLOSED = "sessionClosed"

ROOM_EVENTS = frozenset({
    QUESTION_ADDED,
    QUESTION_UPDATED,
    ATTENDEE_JOINED,
    ATTENDEE_LEFT,
    SESSION_CLOSED,
})

# ─── Question mark actions ───────────────────────────────

MARK_ACTIONS: dict[str, tuple[str, bool]] = {
    "answered": ("answered", True),
    "unanswered": ("answered", False),
    "highlighted": ("highlighted", True),
    "unhighlighted": ("highlighted", False),
}
