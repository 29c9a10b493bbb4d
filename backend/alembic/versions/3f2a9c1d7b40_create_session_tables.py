"""create session tables

Revision ID: 3f2a9c1d7b40
Revises:
Create Date: 2026-10-12 10:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql


revision: str = '3f2a9c1d7b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIMENSIONS = 1536


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS vector')

    op.create_table(
        'sessions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('filename', sa.String(), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(), server_default='processing', nullable=False),
        sa.Column('transcript', sa.Text(), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('speaker_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('vector_status', sa.String(), server_default='pending', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "status IN ('processing', 'completed', 'failed')",
            name='ck_sessions_status',
        ),
        sa.CheckConstraint(
            "vector_status IN ('pending', 'processing', 'completed', 'failed')",
            name='ck_sessions_vector_status',
        ),
        sa.CheckConstraint('speaker_count >= 0', name='ck_sessions_speaker_count'),
    )
    op.create_index('ix_sessions_created_at', 'sessions', ['created_at'])

    op.create_table(
        'speakers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('session_id', sa.Uuid(), sa.ForeignKey('sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('speaker_label', sa.String(), nullable=False),
        sa.Column('total_speaking_time', sa.Integer(), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'transcript_segments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('session_id', sa.Uuid(), sa.ForeignKey('sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('speaker_id', sa.Uuid(), sa.ForeignKey('speakers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('start_time', sa.Float(), nullable=False),
        sa.Column('end_time', sa.Float(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_transcript_segments_session_start',
        'transcript_segments',
        ['session_id', 'start_time'],
    )

    op.create_table(
        'session_vectors',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('session_id', sa.Uuid(), sa.ForeignKey('sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('content_type', sa.String(), nullable=False),
        sa.Column(
            'segment_id',
            sa.Uuid(),
            sa.ForeignKey('transcript_segments.id', ondelete='CASCADE'),
            nullable=True,
        ),
        sa.Column('vector', Vector(EMBEDDING_DIMENSIONS), nullable=False),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "content_type IN ('transcript', 'summary', 'segment')",
            name='ck_session_vectors_content_type',
        ),
        sa.CheckConstraint(
            "(content_type = 'segment') = (segment_id IS NOT NULL)",
            name='ck_session_vectors_segment_ref',
        ),
    )


def downgrade() -> None:
    op.drop_table('session_vectors')
    op.drop_index('ix_transcript_segments_session_start', table_name='transcript_segments')
    op.drop_table('transcript_segments')
    op.drop_table('speakers')
    op.drop_index('ix_sessions_created_at', table_name='sessions')
    op.drop_table('sessions')
