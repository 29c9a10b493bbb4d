"""Partition transcript segments into speaker groups.

This is a stand-in for real diarization: each segment goes to the group named
by the speaker hint the transcription adapter attached to it. The function is
pure and deterministic, so the same segment sequence always yields the same
groups in the same (first-seen) order.

Start/end pairs are not validated. A segment with ``end < start`` contributes a
negative amount to its group's total time.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TypedDict

DEFAULT_SPEAKER_LABEL = "Speaker 1"


class SegmentData(TypedDict, total=False):
    start: float
    end: float
    text: str
    speaker: str | None
    confidence: float | None


@dataclass
class SpeakerGroup:
    label: str
    total_time: float = 0.0
    segments: list[SegmentData] = field(default_factory=list)

    @property
    def rounded_total_time(self) -> int:
        return round_seconds(self.total_time)


def round_seconds(value: float) -> int:
    """Round to the nearest whole second, halves rounding up."""
    return int(math.floor(value + 0.5))


def group_segments(segments: Iterable[SegmentData]) -> dict[str, SpeakerGroup]:
    groups: dict[str, SpeakerGroup] = {}
    for segment in segments:
        label = segment.get("speaker") or DEFAULT_SPEAKER_LABEL
        group = groups.get(label)
        if group is None:
            group = groups[label] = SpeakerGroup(label=label)
        group.total_time += segment["end"] - segment["start"]
        group.segments.append(segment)
    return groups


def session_duration(segments: list[SegmentData]) -> int:
    """Duration of a recording: the last segment's end time, or 0."""
    if not segments:
        return 0
    return round_seconds(segments[-1]["end"])
