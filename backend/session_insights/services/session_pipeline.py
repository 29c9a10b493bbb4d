"""SessionPipeline: turns an uploaded recording into a searchable session record.

``submit`` creates the session row and queues the audio; a PipelineWorker then
calls ``run``, which executes the stages strictly in order:

1. transcribe      - speech-to-text with timed segments
2. group_speakers  - one Speaker row per speaker group, one TranscriptSegment
                     row per segment, then ``speaker_count``
3. summarize       - prose summary of the full transcript
4. finalize        - transcript, summary, duration and ``status=completed``
                     written in a single update
5. vectorize       - transcript and summary embeddings (plus per-segment
                     embeddings when enabled)

A failure in stages 1-4 writes ``status=failed`` and stops; rows persisted by
earlier stages are kept. A failure in stage 5 only writes
``vector_status=failed``: the session stays ``completed``. Nothing is retried.

Core writes only land while the session is still ``processing`` and vector
writes only while it is ``completed`` with vectors in flight. A session the
stale-session sweeper has already failed never leaves that status again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from enum import Enum
from typing import TypeVar

from session_insights.config import settings
from session_insights.exceptions import (
    EmbeddingError,
    SessionClosedError,
    SessionInsightsError,
    SummarizationError,
    TranscriptionError,
)
from session_insights.models.session import (
    AudioSession,
    ContentType,
    SessionStatus,
    TranscriptSegment,
    VectorStatus,
)
from session_insights.services.embedding_service import EmbeddingService
from session_insights.services.pipeline_worker import PipelineJob, PipelineWorker
from session_insights.services.session_store import SessionStore
from session_insights.services.speaker_grouping import (
    SegmentData,
    group_segments,
    session_duration,
)
from session_insights.services.summary_service import SummaryService
from session_insights.services.transcription_service import TranscriptionService

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Core writes only land while the session is still processing; a swept session stays failed.
PROCESSING = {"status": SessionStatus.PROCESSING.value}
VECTORS_PENDING = {"status": SessionStatus.COMPLETED.value, "vector_status": VectorStatus.PENDING.value}
VECTORS_PROCESSING = {
    "status": SessionStatus.COMPLETED.value,
    "vector_status": VectorStatus.PROCESSING.value,
}


class PipelineStage(str, Enum):
    TRANSCRIBE = "transcribe"
    GROUP_SPEAKERS = "group_speakers"
    SUMMARIZE = "summarize"
    FINALIZE = "finalize"
    VECTORIZE = "vectorize"


class SessionPipeline:
    def __init__(
        self,
        store: SessionStore,
        transcriber: TranscriptionService,
        summarizer: SummaryService,
        embedder: EmbeddingService,
        *,
        workers: int | None = None,
        provider_timeout: float | None = None,
        embed_segments: bool | None = None,
    ) -> None:
        self.store = store
        self.transcriber = transcriber
        self.summarizer = summarizer
        self.embedder = embedder
        self.provider_timeout = (
            settings.provider_timeout_seconds if provider_timeout is None else provider_timeout
        )
        self.embed_segments = (
            settings.embed_segments if embed_segments is None else embed_segments
        )
        self.worker = PipelineWorker(self.run, concurrency=workers or settings.pipeline_workers)

    async def start(self) -> None:
        await self.worker.start()

    async def stop(self) -> None:
        await self.worker.stop()

    async def submit(self, audio: bytes, filename: str, size_bytes: int) -> str:
        """Create the session row and queue its pipeline. Does not wait for any stage."""
        record = await self.store.create_session(filename, size_bytes)
        session_id = str(record.id)
        self.worker.enqueue(PipelineJob(session_id=session_id, audio=audio))
        logger.info("Session %s created for %s (%d bytes), processing queued", session_id, filename, size_bytes)
        return session_id

    async def get_status(self, session_id: str) -> AudioSession:
        return await self.store.get_session(session_id)

    async def get_detail(self, session_id: str) -> AudioSession:
        return await self.store.get_session_detail(session_id)

    async def list_sessions(self) -> list[AudioSession]:
        return await self.store.list_sessions()

    async def delete(self, session_id: str) -> None:
        await self.store.delete_session(session_id)
        logger.info("Session %s deleted", session_id)

    async def run(self, session_id: str, audio: bytes) -> None:
        stage = PipelineStage.TRANSCRIBE
        logger.info("Starting processing for session %s", session_id)
        try:
            record = await self.store.get_session(session_id)
            if record.status != SessionStatus.PROCESSING.value:
                logger.warning(
                    "Session %s is already %s, skipping processing", session_id, record.status
                )
                return
            transcription = await self._call(
                stage, self.transcriber.transcribe(audio, record.filename), TranscriptionError
            )
            transcript = transcription["text"]
            segments = transcription["segments"]

            stage = PipelineStage.GROUP_SPEAKERS
            segment_rows = await self._persist_speakers(session_id, segments)

            stage = PipelineStage.SUMMARIZE
            summary = await self._call(
                stage, self.summarizer.summarize(transcript), SummarizationError
            )

            stage = PipelineStage.FINALIZE
            await self.store.update_session(
                session_id,
                expected=PROCESSING,
                transcript=transcript,
                summary=summary,
                duration_seconds=session_duration(segments),
                status=SessionStatus.COMPLETED.value,
            )
        except SessionClosedError:
            logger.warning("Session %s was closed during stage %s, stopping", session_id, stage.value)
            return
        except Exception:
            logger.exception("Processing failed for session %s at stage %s", session_id, stage.value)
            await self._mark_failed(session_id)
            return

        logger.info("Session %s core processing completed", session_id)

        stage = PipelineStage.VECTORIZE
        try:
            await self._vectorize(session_id, transcript, summary, segment_rows)
        except SessionClosedError:
            logger.warning("Session %s was closed during stage %s, stopping", session_id, stage.value)
            return
        except Exception:
            logger.exception("Vector generation failed for session %s at stage %s", session_id, stage.value)
            return
        logger.info("Session %s processed successfully", session_id)

    async def _call(
        self, stage: PipelineStage, awaitable: Awaitable[T], error_cls: type[SessionInsightsError]
    ) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.provider_timeout)
        except asyncio.TimeoutError as exc:
            raise error_cls(
                f"{stage.value} timed out after {self.provider_timeout:g}s"
            ) from exc

    async def _persist_speakers(
        self, session_id: str, segments: list[SegmentData]
    ) -> list[TranscriptSegment]:
        groups = group_segments(segments)
        rows: list[TranscriptSegment] = []
        for group in groups.values():
            speaker = await self.store.create_speaker(
                session_id, group.label, group.rounded_total_time
            )
            for segment in group.segments:
                rows.append(
                    await self.store.create_segment(
                        session_id,
                        speaker.id,
                        start_time=segment["start"],
                        end_time=segment["end"],
                        text=segment["text"],
                        confidence=segment.get("confidence"),
                    )
                )
        await self.store.update_session(session_id, expected=PROCESSING, speaker_count=len(groups))
        logger.info(
            "Session %s: %d speakers, %d segments persisted", session_id, len(groups), len(rows)
        )
        return rows

    async def _vectorize(
        self,
        session_id: str,
        transcript: str,
        summary: str,
        segment_rows: list[TranscriptSegment],
    ) -> None:
        stage = PipelineStage.VECTORIZE
        try:
            await self.store.update_session(
                session_id, expected=VECTORS_PENDING, vector_status=VectorStatus.PROCESSING.value
            )

            for content_type, text in (
                (ContentType.TRANSCRIPT, transcript),
                (ContentType.SUMMARY, summary),
            ):
                vector = await self._call(stage, self.embedder.embed_text(text), EmbeddingError)
                await self.store.create_vector(
                    session_id,
                    content_type.value,
                    vector,
                    metadata={"content_length": len(text)},
                )

            if self.embed_segments and segment_rows:
                vectors = await self._call(
                    stage,
                    self.embedder.embed_batch([row.text for row in segment_rows]),
                    EmbeddingError,
                )
                for row, vector in zip(segment_rows, vectors):
                    await self.store.create_vector(
                        session_id,
                        ContentType.SEGMENT.value,
                        vector,
                        metadata={"content_length": len(row.text), "start_time": row.start_time},
                        segment_id=row.id,
                    )

            await self.store.update_session(
                session_id, expected=VECTORS_PROCESSING, vector_status=VectorStatus.COMPLETED.value
            )
        except SessionClosedError:
            raise
        except Exception:
            await self._set_status(session_id, vector_status=VectorStatus.FAILED.value)
            raise

    async def _mark_failed(self, session_id: str) -> None:
        await self._set_status(session_id, expected=PROCESSING, status=SessionStatus.FAILED.value)

    async def _set_status(
        self, session_id: str, expected: dict[str, str] | None = None, **fields: str
    ) -> None:
        try:
            await self.store.update_session(session_id, expected=expected, **fields)
        except SessionClosedError:
            logger.warning("Session %s already closed, not recording %s", session_id, fields)
        except SessionInsightsError:
            # Left for the stale-session sweeper.
            logger.exception("Could not record %s for session %s", fields, session_id)
