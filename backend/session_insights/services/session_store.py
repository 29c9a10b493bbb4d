"""Session store gateway: the only code allowed to write session rows.

Every write opens its own short-lived database session and commits on its own.
There is no transaction spanning a pipeline stage, so a crash halfway through
persisting speakers and segments leaves some of those rows written and others
missing. Readers must tolerate that; the owning session will be marked failed
either by the pipeline itself or by the stale-session sweeper.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from session_insights.exceptions import NotFoundError, SessionClosedError, StorageError
from session_insights.models.session import (
    AudioSession,
    SessionStatus,
    SessionVector,
    Speaker,
    TranscriptSegment,
    VectorStatus,
)

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Persistence contract consumed by the session pipeline."""

    @abstractmethod
    async def create_session(self, filename: str, file_size: int) -> AudioSession:
        """Insert a new session in ``processing``/``pending`` state."""
        ...

    @abstractmethod
    async def update_session(
        self, session_id: str, *, expected: dict[str, str] | None = None, **fields: Any
    ) -> None:
        """Apply a partial update to one session row.

        With *expected*, the row is only written while each named column still
        holds the given value; otherwise SessionClosedError is raised and the
        row is left as it is.
        """
        ...

    @abstractmethod
    async def create_speaker(
        self, session_id: str, speaker_label: str, total_speaking_time: int
    ) -> Speaker: ...

    @abstractmethod
    async def create_segment(
        self,
        session_id: str,
        speaker_id: uuid.UUID,
        start_time: float,
        end_time: float,
        text: str,
        confidence: float | None = None,
    ) -> TranscriptSegment: ...

    @abstractmethod
    async def create_vector(
        self,
        session_id: str,
        content_type: str,
        vector: list[float],
        metadata: dict[str, Any] | None = None,
        segment_id: uuid.UUID | None = None,
    ) -> SessionVector: ...

    @abstractmethod
    async def get_session(self, session_id: str) -> AudioSession:
        """Return the session row alone. Raises NotFoundError."""
        ...

    @abstractmethod
    async def get_session_detail(self, session_id: str) -> AudioSession:
        """Return the session with its speakers and time-ordered segments loaded."""
        ...

    @abstractmethod
    async def list_sessions(self) -> list[AudioSession]:
        """Return all sessions, newest first, without child rows."""
        ...

    @abstractmethod
    async def delete_session(self, session_id: str) -> None:
        """Delete a session together with its speakers, segments and vectors."""
        ...

    @abstractmethod
    async def fail_stale_sessions(self, cutoff: datetime) -> int:
        """Fail sessions whose pipeline stopped making progress before *cutoff*.

        Core processing stuck in ``processing`` becomes ``status=failed``; a
        completed session whose vectors never finished gets
        ``vector_status=failed``. Failed sessions are left untouched.
        """
        ...


def parse_session_id(session_id: str | uuid.UUID) -> uuid.UUID:
    if isinstance(session_id, uuid.UUID):
        return session_id
    try:
        return uuid.UUID(str(session_id))
    except ValueError:
        raise NotFoundError(str(session_id)) from None


class SqlSessionStore(SessionStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    @asynccontextmanager
    async def _session(self, action: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as session:
                yield session
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Store operation %s failed: %s", action, exc)
            raise StorageError(f"Failed to {action}") from exc

    async def create_session(self, filename: str, file_size: int) -> AudioSession:
        async with self._session("create session") as session:
            record = AudioSession(
                id=uuid.uuid4(),
                filename=filename,
                file_size=file_size,
                status=SessionStatus.PROCESSING.value,
                vector_status=VectorStatus.PENDING.value,
                speaker_count=0,
            )
            session.add(record)
            await session.flush()
        return record

    async def update_session(
        self, session_id: str, *, expected: dict[str, str] | None = None, **fields: Any
    ) -> None:
        sid = parse_session_id(session_id)
        async with self._session("update session") as session:
            stmt = update(AudioSession).where(AudioSession.id == sid)
            for column, value in (expected or {}).items():
                stmt = stmt.where(getattr(AudioSession, column) == value)
            result = await session.execute(stmt.values(**fields, updated_at=datetime.utcnow()))
            if not result.rowcount:
                if expected and await session.get(AudioSession, sid) is not None:
                    raise SessionClosedError(str(session_id))
                raise NotFoundError(str(session_id))

    async def create_speaker(
        self, session_id: str, speaker_label: str, total_speaking_time: int
    ) -> Speaker:
        async with self._session("create speaker") as session:
            speaker = Speaker(
                id=uuid.uuid4(),
                session_id=parse_session_id(session_id),
                speaker_label=speaker_label,
                total_speaking_time=total_speaking_time,
            )
            session.add(speaker)
            await session.flush()
        return speaker

    async def create_segment(
        self,
        session_id: str,
        speaker_id: uuid.UUID,
        start_time: float,
        end_time: float,
        text: str,
        confidence: float | None = None,
    ) -> TranscriptSegment:
        async with self._session("create transcript segment") as session:
            segment = TranscriptSegment(
                id=uuid.uuid4(),
                session_id=parse_session_id(session_id),
                speaker_id=speaker_id,
                start_time=start_time,
                end_time=end_time,
                text=text,
                confidence=confidence,
            )
            session.add(segment)
            await session.flush()
        return segment

    async def create_vector(
        self,
        session_id: str,
        content_type: str,
        vector: list[float],
        metadata: dict[str, Any] | None = None,
        segment_id: uuid.UUID | None = None,
    ) -> SessionVector:
        async with self._session("create session vector") as session:
            row = SessionVector(
                id=uuid.uuid4(),
                session_id=parse_session_id(session_id),
                content_type=content_type,
                segment_id=segment_id,
                vector=vector,
                metadata_=metadata,
            )
            session.add(row)
            await session.flush()
        return row

    async def get_session(self, session_id: str) -> AudioSession:
        sid = parse_session_id(session_id)
        async with self._session("fetch session") as session:
            stmt = select(AudioSession).where(AudioSession.id == sid)
            record = (await session.execute(stmt)).scalar_one_or_none()
        if record is None:
            raise NotFoundError(str(session_id))
        return record

    async def get_session_detail(self, session_id: str) -> AudioSession:
        sid = parse_session_id(session_id)
        async with self._session("fetch session detail") as session:
            stmt = (
                select(AudioSession)
                .options(
                    selectinload(AudioSession.speakers),
                    selectinload(AudioSession.segments).selectinload(TranscriptSegment.speaker),
                )
                .where(AudioSession.id == sid)
            )
            record = (await session.execute(stmt)).scalar_one_or_none()
        if record is None:
            raise NotFoundError(str(session_id))
        return record

    async def list_sessions(self) -> list[AudioSession]:
        async with self._session("list sessions") as session:
            stmt = select(AudioSession).order_by(AudioSession.created_at.desc())
            return list((await session.execute(stmt)).scalars().all())

    async def delete_session(self, session_id: str) -> None:
        sid = parse_session_id(session_id)
        async with self._session("delete session") as session:
            # Child rows go with it through ON DELETE CASCADE.
            result = await session.execute(delete(AudioSession).where(AudioSession.id == sid))
            if not result.rowcount:
                raise NotFoundError(str(session_id))

    async def fail_stale_sessions(self, cutoff: datetime) -> int:
        now = datetime.utcnow()
        async with self._session("fail stale sessions") as session:
            core = await session.execute(
                update(AudioSession)
                .where(
                    AudioSession.status == SessionStatus.PROCESSING.value,
                    AudioSession.updated_at < cutoff,
                )
                .values(status=SessionStatus.FAILED.value, updated_at=now)
            )
            vectors = await session.execute(
                update(AudioSession)
                .where(
                    AudioSession.status == SessionStatus.COMPLETED.value,
                    or_(
                        AudioSession.vector_status == VectorStatus.PROCESSING.value,
                        AudioSession.vector_status == VectorStatus.PENDING.value,
                    ),
                    AudioSession.updated_at < cutoff,
                )
                .values(vector_status=VectorStatus.FAILED.value, updated_at=now)
            )
        return (core.rowcount or 0) + (vectors.rowcount or 0)
