from __future__ import annotations

import uuid
from enum import Enum

from pgvector.sqlalchemy import Vector
from sqlalchemy import CheckConstraint, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from session_insights.config import settings
from session_insights.models.base import Base, TimestampMixin


class SessionStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class VectorStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ContentType(str, Enum):
    TRANSCRIPT = "transcript"
    SUMMARY = "summary"
    SEGMENT = "segment"


class AudioSession(TimestampMixin, Base):
    """One uploaded recording and everything derived from it.

    ``status`` and ``vector_status`` are independent state machines: a
    vectorization failure never moves ``status`` off ``completed``.
    """

    __tablename__ = "sessions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    filename: Mapped[str] = mapped_column(String, nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, server_default=SessionStatus.PROCESSING.value
    )
    transcript: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    speaker_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    vector_status: Mapped[str] = mapped_column(
        String, nullable=False, server_default=VectorStatus.PENDING.value
    )

    speakers: Mapped[list[Speaker]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Speaker.created_at",
    )
    segments: Mapped[list[TranscriptSegment]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TranscriptSegment.start_time",
    )
    vectors: Mapped[list[SessionVector]] = relationship(
        back_populates="session", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('processing', 'completed', 'failed')",
            name="ck_sessions_status",
        ),
        CheckConstraint(
            "vector_status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_sessions_vector_status",
        ),
        CheckConstraint("speaker_count >= 0", name="ck_sessions_speaker_count"),
        Index("ix_sessions_created_at", "created_at"),
    )


class Speaker(TimestampMixin, Base):
    __tablename__ = "speakers"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False
    )
    speaker_label: Mapped[str] = mapped_column(String, nullable=False)
    total_speaking_time: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")

    session: Mapped[AudioSession] = relationship(back_populates="speakers")


class TranscriptSegment(TimestampMixin, Base):
    __tablename__ = "transcript_segments"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False
    )
    speaker_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("speakers.id", ondelete="CASCADE"), nullable=False
    )
    start_time: Mapped[float] = mapped_column(Float, nullable=False)
    end_time: Mapped[float] = mapped_column(Float, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)

    session: Mapped[AudioSession] = relationship(back_populates="segments")
    speaker: Mapped[Speaker] = relationship()

    __table_args__ = (
        Index("ix_transcript_segments_session_start", "session_id", "start_time"),
    )


class SessionVector(TimestampMixin, Base):
    __tablename__ = "session_vectors"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False
    )
    content_type: Mapped[str] = mapped_column(String, nullable=False)
    segment_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("transcript_segments.id", ondelete="CASCADE"), nullable=True
    )
    vector = mapped_column(Vector(settings.embedding_dimensions), nullable=False)
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)

    session: Mapped[AudioSession] = relationship(back_populates="vectors")

    __table_args__ = (
        CheckConstraint(
            "content_type IN ('transcript', 'summary', 'segment')",
            name="ck_session_vectors_content_type",
        ),
        CheckConstraint(
            "(content_type = 'segment') = (segment_id IS NOT NULL)",
            name="ck_session_vectors_segment_ref",
        ),
    )
