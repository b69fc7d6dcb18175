"""Transcript segments and SRT/VTT rendering."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class TranscriptSegment:
    start: float
    end: float
    text: str


@dataclass
class Transcript:
    text: str
    segments: List[TranscriptSegment] = field(default_factory=list)
    duration_seconds: Optional[float] = None


def format_timestamp(seconds: float, separator: str = ",") -> str:
    """HH:MM:SS,mmm (SRT) or HH:MM:SS.mmm with separator='.' (VTT)."""
    total_ms = max(int(round(float(seconds) * 1000)), 0)
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, millis = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}{separator}{millis:03d}"


def build_srt(segments: List[TranscriptSegment]) -> str:
    blocks = []
    for index, segment in enumerate(segments, start=1):
        text = (segment.text or "").strip()
        blocks.append(
            f"{index}\n"
            f"{format_timestamp(segment.start)} --> {format_timestamp(segment.end)}\n"
            f"{text}\n"
        )
    return "\n".join(blocks)


def build_vtt(segments: List[TranscriptSegment]) -> str:
    lines = ["WEBVTT", ""]
    for segment in segments:
        lines.append(f"{format_timestamp(segment.start, '.')} --> {format_timestamp(segment.end, '.')}")
        lines.append((segment.text or "").strip())
        lines.append("")
    return "\n".join(lines)


def segments_from_payload(raw_segments) -> List[TranscriptSegment]:
    """Normalize provider segments (dicts or SDK objects) into TranscriptSegment."""
    segments: List[TranscriptSegment] = []
    for raw in raw_segments or []:
        if isinstance(raw, dict):
            start, end, text = raw.get("start"), raw.get("end"), raw.get("text")
        else:
            start, end, text = getattr(raw, "start", None), getattr(raw, "end", None), getattr(raw, "text", None)
        if start is None or end is None:
            continue
        segments.append(TranscriptSegment(start=float(start), end=float(end), text=str(text or "").strip()))
    return segments
