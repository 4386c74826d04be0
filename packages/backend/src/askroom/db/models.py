"""SQLAlchemy ORM models — schema for the SQL Session Store.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Alembic migrations mirror these definitions.

The set semantics of the domain live in constraints, not in application
checks alone:
- room_attendees: UNIQUE (room_id, peer_id)         → attendees are a set
- questions:      UNIQUE (room_id, normalized_text) → no duplicate questions
- question_votes: UNIQUE (question_id, voter_id)    → upVotedBy is a set

questions.up_votes is a denormalized count kept in step with
question_votes by paired insert/delete + increment in one transaction.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_hex_id() -> str:
    return uuid.uuid4().hex


class Room(Base):
    """A presenter-hosted Q&A session, addressed by its short code."""

    __tablename__ = "rooms"
    __table_args__ = (
        Index("ix_rooms_status_created", "status", "created_at"),
    )

    room_id: Mapped[str] = mapped_column(String(12), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="active", server_default="active"
    )  # active | closed
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    closed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    attendees: Mapped[list["RoomAttendee"]] = relationship(
        back_populates="room",
        order_by="RoomAttendee.id",
        cascade="all, delete-orphan",
    )
    questions: Mapped[list["Question"]] = relationship(
        back_populates="room",
        order_by="[Question.created_at, Question.id]",
        cascade="all, delete-orphan",
    )


class RoomAttendee(Base):
    """Membership row. The owner is never stored here."""

    __tablename__ = "room_attendees"
    __table_args__ = (
        UniqueConstraint("room_id", "peer_id", name="uq_room_attendees_room_peer"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    room_id: Mapped[str] = mapped_column(
        String(12), ForeignKey("rooms.room_id", ondelete="CASCADE"), nullable=False
    )
    peer_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    room: Mapped["Room"] = relationship(back_populates="attendees")


class Question(Base):
    """An attendee's question. normalized_text is internal only."""

    __tablename__ = "questions"
    __table_args__ = (
        UniqueConstraint(
            "room_id", "normalized_text", name="uq_questions_room_normalized"
        ),
        Index("ix_questions_room_id", "room_id"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_hex_id)
    room_id: Mapped[str] = mapped_column(
        String(12), ForeignKey("rooms.room_id", ondelete="CASCADE"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    normalized_text: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[str] = mapped_column(String(255), nullable=False)
    author_name: Mapped[str] = mapped_column(String(100), nullable=False)
    up_votes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    answered: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    highlighted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    room: Mapped["Room"] = relationship(back_populates="questions")
    votes: Mapped[list["QuestionVote"]] = relationship(
        back_populates="question",
        order_by="QuestionVote.id",
        cascade="all, delete-orphan",
    )


class QuestionVote(Base):
    """One upvote. Presence of the row is the vote."""

    __tablename__ = "question_votes"
    __table_args__ = (
        UniqueConstraint("question_id", "voter_id", name="uq_question_votes_voter"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    question_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )
    voter_id: Mapped[str] = mapped_column(String(255), nullable=False)
    voted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    question: Mapped["Question"] = relationship(back_populates="votes")
