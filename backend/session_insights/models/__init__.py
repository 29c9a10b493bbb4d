from session_insights.models.session import (
    AudioSession,
    ContentType,
    SessionStatus,
    SessionVector,
    Speaker,
    TranscriptSegment,
    VectorStatus,
)

__all__ = [
    "AudioSession",
    "Speaker",
    "TranscriptSegment",
    "SessionVector",
    "SessionStatus",
    "VectorStatus",
    "ContentType",
]
