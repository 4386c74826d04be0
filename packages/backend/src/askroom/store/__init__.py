"""Session Store implementations.

Learn: `SessionStore` is the interface the engine talks to.
- SqlSessionStore    — Postgres in production (any SQLAlchemy async URL)
- MemorySessionStore — one process only; tests and local demos
"""

from askroom.store.base import SessionStore, normalize_question_text
from askroom.store.memory import MemorySessionStore

__all__ = ["MemorySessionStore", "SessionStore", "normalize_question_text"]
