from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, TypedDict

from openai import AsyncOpenAI, OpenAIError

from session_insights.config import settings
from session_insights.exceptions import TranscriptionError
from session_insights.services.speaker_grouping import SegmentData

logger = logging.getLogger(__name__)

AUDIO_MIME_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "m4a": "audio/m4a",
    "ogg": "audio/ogg",
    "webm": "audio/webm",
}
DEFAULT_AUDIO_MIME_TYPE = "audio/mpeg"
SPEAKER_HINT_COUNT = 2


class TranscriptionResult(TypedDict):
    text: str
    segments: list[SegmentData]


def audio_mime_type(filename: str) -> str:
    _, dot, extension = filename.lower().rpartition(".")
    if not dot:
        return DEFAULT_AUDIO_MIME_TYPE
    return AUDIO_MIME_TYPES.get(extension, DEFAULT_AUDIO_MIME_TYPE)


class TranscriptionService:
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        self._api_key = api_key or settings.openai_api_key
        self.model = model or settings.openai_transcription_model
        self._client: AsyncOpenAI | None = None
        self._semaphore = asyncio.Semaphore(settings.openai_max_concurrent)

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def transcribe(self, audio: bytes, filename: str) -> TranscriptionResult:
        async with self._semaphore:
            try:
                resp = await self.client.audio.transcriptions.create(
                    file=(filename, audio, audio_mime_type(filename)),
                    model=self.model,
                    response_format="verbose_json",
                    timestamp_granularities=["segment"],
                )
            except OpenAIError as exc:
                raise TranscriptionError(f"Failed to transcribe {filename}: {exc}") from exc

        segments = [
            self._to_segment(index, raw) for index, raw in enumerate(resp.segments or [])
        ]
        logger.info("Transcribed %s: %d segments", filename, len(segments))
        return {"text": resp.text or "", "segments": segments}

    @staticmethod
    def _to_segment(index: int, raw: Any) -> SegmentData:
        # Naive alternating speaker hint; real diarization is not attempted.
        avg_logprob = getattr(raw, "avg_logprob", None)
        return {
            "start": float(raw.start),
            "end": float(raw.end),
            "text": (raw.text or "").strip(),
            "speaker": f"Speaker {index % SPEAKER_HINT_COUNT + 1}",
            "confidence": round(math.exp(avg_logprob), 4) if avg_logprob is not None else None,
        }


_transcription_service: TranscriptionService | None = None


def get_transcription_service() -> TranscriptionService:
    global _transcription_service
    if _transcription_service is None:
        _transcription_service = TranscriptionService()
    return _transcription_service
