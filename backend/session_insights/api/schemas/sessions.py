from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UploadResponse(BaseModel):
    session_id: str
    message: str = "Session uploaded successfully. Processing started."


class SpeakerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    speaker_label: str
    total_speaking_time: int


class SegmentResponse(BaseModel):
    id: uuid.UUID
    speaker_label: str
    start_time: float
    end_time: float
    text: str
    confidence: float | None = None


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    filename: str
    file_size: int
    duration_seconds: int | None = None
    status: str
    transcript: str | None = None
    summary: str | None = None
    speaker_count: int = 0
    vector_status: str


class SessionDetailResponse(SessionResponse):
    speakers: list[SpeakerResponse] = Field(default_factory=list)
    segments: list[SegmentResponse] = Field(default_factory=list)


class MessageResponse(BaseModel):
    message: str
