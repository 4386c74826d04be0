"""Initial room schema: rooms, attendees, questions, votes

Learn: The unique constraints carry the set semantics, so two servers
racing on the same room can't double-insert an attendee, a question, or
a vote. ON DELETE CASCADE lets a room purge take its children with it.

Revision ID: 3c1f7a9e2b40
Revises:
Create Date: 2026-10-17 09:12:40.118204
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f7a9e2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'rooms',
        sa.Column('room_id', sa.String(length=12), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=16), server_default='active', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('room_id'),
    )
    op.create_index('ix_rooms_status_created', 'rooms', ['status', 'created_at'])

    op.create_table(
        'room_attendees',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('room_id', sa.String(length=12), nullable=False),
        sa.Column('peer_id', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.room_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'peer_id', name='uq_room_attendees_room_peer'),
    )

    op.create_table(
        'questions',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('room_id', sa.String(length=12), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('normalized_text', sa.Text(), nullable=False),
        sa.Column('author_id', sa.String(length=255), nullable=False),
        sa.Column('author_name', sa.String(length=100), nullable=False),
        sa.Column('up_votes', sa.Integer(), server_default='0', nullable=False),
        sa.Column('answered', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('highlighted', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.room_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'normalized_text', name='uq_questions_room_normalized'),
    )
    op.create_index('ix_questions_room_id', 'questions', ['room_id'])

    op.create_table(
        'question_votes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('question_id', sa.String(length=32), nullable=False),
        sa.Column('voter_id', sa.String(length=255), nullable=False),
        sa.Column('voted_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['question_id'], ['questions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('question_id', 'voter_id', name='uq_question_votes_voter'),
    )


def downgrade() -> None:
    op.drop_table('question_votes')
    op.drop_index('ix_questions_room_id', table_name='questions')
    op.drop_table('questions')
    op.drop_table('room_attendees')
    op.drop_index('ix_rooms_status_created', table_name='rooms')
    op.drop_table('rooms')
