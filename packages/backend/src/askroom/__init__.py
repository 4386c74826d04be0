"""askroom — real-time audience Q&A backend.

Presenters open a room, attendees join with a short code, ask and upvote
questions, and every participant sees the same state live, whichever
server process their WebSocket happens to be attached to.
"""

__version__ = "0.1.0"
