import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from session_insights.api.dependencies import get_pipeline
from session_insights.api.schemas.sessions import (
    MessageResponse,
    SegmentResponse,
    SessionDetailResponse,
    SessionResponse,
    SpeakerResponse,
    UploadResponse,
)
from session_insights.config import settings
from session_insights.exceptions import NotFoundError, StorageError, ValidationError
from session_insights.models.session import AudioSession
from session_insights.services.session_pipeline import SessionPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


def validate_audio_upload(filename: str | None, content_type: str | None, size: int) -> None:
    if not filename or size == 0:
        raise ValidationError("No audio file provided")
    if size > settings.max_upload_bytes:
        raise ValidationError(
            f"Audio file exceeds the {settings.max_upload_bytes // (1024 * 1024)} MiB limit"
        )
    if content_type not in settings.allowed_audio_types:
        raise ValidationError(f"Invalid audio file format: {content_type}")


def _validate(audio: UploadFile | None, size: int) -> None:
    try:
        validate_audio_upload(
            audio.filename if audio else None, audio.content_type if audio else None, size
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _detail_response(record: AudioSession) -> SessionDetailResponse:
    base = SessionResponse.model_validate(record)
    return SessionDetailResponse(
        **base.model_dump(),
        speakers=[SpeakerResponse.model_validate(s) for s in record.speakers],
        segments=[
            SegmentResponse(
                id=seg.id,
                speaker_label=seg.speaker.speaker_label,
                start_time=seg.start_time,
                end_time=seg.end_time,
                text=seg.text,
                confidence=seg.confidence,
            )
            for seg in record.segments
        ],
    )


@router.post("/upload", status_code=202, response_model=UploadResponse)
async def upload_session(
    audio: UploadFile | None = File(None),
    pipeline: SessionPipeline = Depends(get_pipeline),
):
    """Accept a recording and start processing it in the background."""
    if audio is not None and audio.size is not None:
        # Reject by the parsed size before the body is buffered.
        _validate(audio, audio.size)
    data = await audio.read() if audio else b""
    _validate(audio, len(data))

    logger.info("Uploading session: %s (%d bytes)", audio.filename, len(data))
    try:
        session_id = await pipeline.submit(data, audio.filename, len(data))
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return UploadResponse(session_id=session_id)


@router.get("/", response_model=list[SessionResponse])
async def list_sessions(pipeline: SessionPipeline = Depends(get_pipeline)):
    try:
        records = await pipeline.list_sessions()
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return [SessionResponse.model_validate(r) for r in records]


@router.get("/{session_id}", response_model=SessionDetailResponse)
async def get_session(session_id: str, pipeline: SessionPipeline = Depends(get_pipeline)):
    try:
        record = await pipeline.get_detail(session_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return _detail_response(record)


@router.delete("/{session_id}", response_model=MessageResponse)
async def delete_session(session_id: str, pipeline: SessionPipeline = Depends(get_pipeline)):
    try:
        await pipeline.delete(session_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return MessageResponse(message="Session deleted successfully")
