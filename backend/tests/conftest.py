"""Shared test doubles: an in-memory session store and scripted providers."""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime
from typing import Any

import pytest

from session_insights.exceptions import (
    EmbeddingError,
    NotFoundError,
    SessionClosedError,
    StorageError,
)
from session_insights.models.session import (
    AudioSession,
    SessionStatus,
    SessionVector,
    Speaker,
    TranscriptSegment,
    VectorStatus,
)
from session_insights.services.session_pipeline import SessionPipeline
from session_insights.services.session_store import SessionStore, parse_session_id

EMBEDDING_DIMENSIONS = 4


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self.sessions: dict[uuid.UUID, AudioSession] = {}
        self.speakers: list[Speaker] = []
        self.segments: list[TranscriptSegment] = []
        self.vectors: list[SessionVector] = []
        self.fail_on: set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise StorageError(f"{operation} unavailable")

    def _get(self, session_id: str) -> AudioSession:
        record = self.sessions.get(parse_session_id(session_id))
        if record is None:
            raise NotFoundError(str(session_id))
        return record

    def rows_for(self, session_id: str) -> dict[str, list[Any]]:
        sid = parse_session_id(session_id)
        return {
            "speakers": [s for s in self.speakers if s.session_id == sid],
            "segments": [s for s in self.segments if s.session_id == sid],
            "vectors": [v for v in self.vectors if v.session_id == sid],
        }

    async def create_session(self, filename: str, file_size: int) -> AudioSession:
        self._check("create_session")
        now = datetime.utcnow()
        record = AudioSession(
            id=uuid.uuid4(),
            filename=filename,
            file_size=file_size,
            status=SessionStatus.PROCESSING.value,
            vector_status=VectorStatus.PENDING.value,
            speaker_count=0,
            created_at=now,
            updated_at=now,
        )
        self.sessions[record.id] = record
        return record

    async def update_session(self, session_id: str, *, expected=None, **fields: Any) -> None:
        self._check("update_session")
        for name in fields:
            self._check(f"update_session:{name}")
        record = self._get(session_id)
        for name, value in (expected or {}).items():
            if getattr(record, name) != value:
                raise SessionClosedError(str(session_id))
        for name, value in fields.items():
            setattr(record, name, value)
        record.updated_at = datetime.utcnow()

    async def create_speaker(self, session_id, speaker_label, total_speaking_time):
        self._check("create_speaker")
        speaker = Speaker(
            id=uuid.uuid4(),
            session_id=self._get(session_id).id,
            speaker_label=speaker_label,
            total_speaking_time=total_speaking_time,
            created_at=datetime.utcnow(),
        )
        self.speakers.append(speaker)
        return speaker

    async def create_segment(
        self, session_id, speaker_id, start_time, end_time, text, confidence=None
    ):
        self._check("create_segment")
        segment = TranscriptSegment(
            id=uuid.uuid4(),
            session_id=self._get(session_id).id,
            speaker_id=speaker_id,
            start_time=start_time,
            end_time=end_time,
            text=text,
            confidence=confidence,
        )
        self.segments.append(segment)
        return segment

    async def create_vector(
        self, session_id, content_type, vector, metadata=None, segment_id=None
    ):
        self._check("create_vector")
        row = SessionVector(
            id=uuid.uuid4(),
            session_id=self._get(session_id).id,
            content_type=content_type,
            segment_id=segment_id,
            vector=list(vector),
            metadata_=metadata,
        )
        self.vectors.append(row)
        return row

    async def get_session(self, session_id: str) -> AudioSession:
        self._check("get_session")
        return self._get(session_id)

    async def get_session_detail(self, session_id: str) -> AudioSession:
        self._check("get_session_detail")
        record = self._get(session_id)
        rows = self.rows_for(session_id)
        speakers_by_id = {s.id: s for s in rows["speakers"]}
        for segment in rows["segments"]:
            segment.speaker = speakers_by_id[segment.speaker_id]
        record.speakers = rows["speakers"]
        record.segments = sorted(rows["segments"], key=lambda s: s.start_time)
        return record

    async def list_sessions(self) -> list[AudioSession]:
        self._check("list_sessions")
        return sorted(self.sessions.values(), key=lambda s: s.created_at, reverse=True)

    async def delete_session(self, session_id: str) -> None:
        self._check("delete_session")
        record = self._get(session_id)
        del self.sessions[record.id]
        self.speakers = [s for s in self.speakers if s.session_id != record.id]
        self.segments = [s for s in self.segments if s.session_id != record.id]
        self.vectors = [v for v in self.vectors if v.session_id != record.id]

    async def fail_stale_sessions(self, cutoff: datetime) -> int:
        self._check("fail_stale_sessions")
        failed = 0
        for record in self.sessions.values():
            if record.updated_at >= cutoff:
                continue
            if record.status == SessionStatus.PROCESSING.value:
                record.status = SessionStatus.FAILED.value
                failed += 1
            elif record.status == SessionStatus.COMPLETED.value and record.vector_status in (
                VectorStatus.PENDING.value,
                VectorStatus.PROCESSING.value,
            ):
                record.vector_status = VectorStatus.FAILED.value
                failed += 1
        return failed


class ScriptedTranscriber:
    def __init__(self, result=None, error: Exception | None = None, gate: asyncio.Event | None = None):
        self.result = result or {"text": "", "segments": []}
        self.error = error
        self.gate = gate
        self.calls: list[tuple[bytes, str]] = []
        self.completed = 0

    async def transcribe(self, audio: bytes, filename: str):
        self.calls.append((audio, filename))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        self.completed += 1
        return self.result


class ScriptedSummarizer:
    def __init__(self, summary: str = "A short summary.", error: Exception | None = None):
        self.summary = summary
        self.error = error
        self.inputs: list[str] = []

    async def summarize(self, transcript: str) -> str:
        self.inputs.append(transcript)
        if self.error is not None:
            raise self.error
        return self.summary


class ScriptedEmbedder:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.inputs: list[str] = []

    async def embed_text(self, text: str) -> list[float]:
        self.inputs.append(text)
        if self.fail:
            raise EmbeddingError("embedding provider unavailable")
        return [float(len(text))] * EMBEDDING_DIMENSIONS

    async def embed_batch(self, texts: list[str], batch_size: int = 100) -> list[list[float]]:
        return [await self.embed_text(t) for t in texts]


def transcription(text: str, *segments: tuple) -> dict[str, Any]:
    return {
        "text": text,
        "segments": [
            {"start": start, "end": end, "text": seg_text, "speaker": speaker}
            for start, end, seg_text, speaker in segments
        ],
    }


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def make_pipeline(store):
    def _make(
        transcriber=None,
        summarizer=None,
        embedder=None,
        **kwargs: Any,
    ) -> SessionPipeline:
        kwargs.setdefault("workers", 1)
        kwargs.setdefault("provider_timeout", 5)
        kwargs.setdefault("embed_segments", False)
        return SessionPipeline(
            store,
            transcriber=transcriber or ScriptedTranscriber(),
            summarizer=summarizer or ScriptedSummarizer(),
            embedder=embedder or ScriptedEmbedder(),
            **kwargs,
        )

    return _make
