"""
Silence-aware audio chunking and ordered transcript merging.

Audio above the upload ceiling is compressed first; if it is still too
large it is split at silence points and each chunk is transcribed in file
order.
"""

from __future__ import annotations

import glob
import logging
import os
import re
from typing import Callable, List, Optional, Sequence

import ffmpeg

from config import settings

from .audio import compress_audio, file_size_mb
from .metadata import probe_duration_seconds
from .subtitles import Transcript, TranscriptSegment

logger = logging.getLogger(__name__)

FORCE_SPLIT_AFTER_SECONDS = 300

_SILENCE_START_RE = re.compile(r"silence_start:\s*(-?\d+(?:\.\d+)?)")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


def detect_silence_points(audio_path: str) -> List[float]:
    """Return the start time of every silence interval ffmpeg reports."""
    try:
        _, stderr = (
            ffmpeg
            .input(audio_path)
            .filter("silencedetect", noise=f"{settings.SILENCE_NOISE_DB}dB", d=settings.SILENCE_MIN_SECONDS)
            .output("-", format="null")
            .run(capture_stdout=True, capture_stderr=True)
        )
    except ffmpeg.Error as exc:
        logger.warning("Silence detection failed for %s: %s", audio_path, exc.stderr.decode() if exc.stderr else exc)
        return []
    output = stderr.decode("utf-8", errors="replace") if isinstance(stderr, bytes) else str(stderr or "")
    return [max(float(value), 0.0) for value in _SILENCE_START_RE.findall(output)]


def plan_segment_times(
    silence_points: Sequence[float],
    duration_seconds: Optional[float],
    max_segment_seconds: float,
    force_after_seconds: Optional[float] = None,
) -> List[float]:
    """
    Choose split offsets.

    A silence point becomes a split when it lies at least max_segment_seconds
    after the previous split. When no silence qualifies and the audio is longer
    than force_after_seconds, splits are forced every max_segment_seconds.
    """
    times: List[float] = []
    current = 0.0
    for point in sorted(silence_points):
        if duration_seconds is not None and point >= duration_seconds:
            break
        if point - current >= max_segment_seconds:
            times.append(point)
            current = point

    if not times and force_after_seconds is not None and duration_seconds and duration_seconds > force_after_seconds:
        offset = float(max_segment_seconds)
        while offset < duration_seconds:
            times.append(offset)
            offset += max_segment_seconds
    return times


def split_audio(audio_path: str, segment_times: Sequence[float], chunks_dir: str) -> List[str]:
    """Cut audio at the given offsets. Returns chunk paths in playback order."""
    if not segment_times:
        return [audio_path]
    os.makedirs(chunks_dir, exist_ok=True)
    extension = os.path.splitext(audio_path)[1] or ".mp3"
    pattern = os.path.join(chunks_dir, f"chunk_%03d{extension}")
    (
        ffmpeg
        .input(audio_path)
        .output(
            pattern,
            f="segment",
            segment_times=",".join(f"{t:.3f}" for t in segment_times),
            c="copy",
        )
        .overwrite_output()
        .run(quiet=True)
    )
    return sorted(glob.glob(os.path.join(chunks_dir, f"chunk_*{extension}")))


def _sentences(text: str) -> List[str]:
    return [part.strip() for part in _SENTENCE_SPLIT_RE.split(text or "") if part.strip()]


def _strip_repeated_tail(previous: str, current: str) -> str:
    tail = _sentences(previous)
    head = current.lstrip()
    for count in (2, 1):
        if len(tail) < count:
            continue
        pattern = r"[.!?]*\s*".join(re.escape(sentence) for sentence in tail[-count:])
        match = re.match(pattern + r"(?=[\s.!?]|$)", head)
        if match:
            return head[match.end():].lstrip(".!? ")
    return head


def merge_transcriptions(texts: Sequence[str]) -> str:
    """
    Join chunk transcripts in order.

    When a chunk opens with the last one or two sentences of the chunk before
    it, the repeated sentences are dropped.
    """
    if len(texts) == 1:
        return texts[0]
    merged: List[str] = []
    previous = ""
    for index, text in enumerate(texts):
        piece = (text or "").strip()
        if index > 0 and previous:
            piece = _strip_repeated_tail(previous, piece)
        if piece:
            merged.append(piece)
        previous = text or ""
    return " ".join(merged).strip()


def merge_segments(chunks: Sequence[Transcript], offsets: Sequence[float]) -> List[TranscriptSegment]:
    segments: List[TranscriptSegment] = []
    for transcript, offset in zip(chunks, offsets):
        for segment in transcript.segments:
            segments.append(
                TranscriptSegment(start=segment.start + offset, end=segment.end + offset, text=segment.text)
            )
    return segments


def transcribe_with_chunking(
    audio_path: str,
    work_dir: str,
    transcribe_file: Callable[[str], Transcript],
    *,
    max_segment_seconds: float,
    force_after_seconds: Optional[float] = FORCE_SPLIT_AFTER_SECONDS,
    max_file_mb: Optional[float] = None,
) -> Transcript:
    """Transcribe a file directly when it fits, otherwise compress and then chunk it."""
    os.makedirs(work_dir, exist_ok=True)
    limit_mb = float(max_file_mb if max_file_mb is not None else settings.MAX_UPLOAD_FILE_MB)
    duration = probe_duration_seconds(audio_path)

    if file_size_mb(audio_path) > limit_mb:
        compressed_path = os.path.join(work_dir, "compressed.mp3")
        try:
            audio_path = compress_audio(audio_path, compressed_path)
            logger.info("Compressed audio to %.2fMB", file_size_mb(audio_path))
        except ffmpeg.Error:
            logger.warning("Audio compression failed; chunking the original file")

    if file_size_mb(audio_path) <= limit_mb:
        transcript = transcribe_file(audio_path)
        if transcript.duration_seconds is None:
            transcript.duration_seconds = duration
        return transcript

    silence_points = detect_silence_points(audio_path)
    segment_times = plan_segment_times(silence_points, duration, max_segment_seconds, force_after_seconds)
    chunk_paths = split_audio(audio_path, segment_times, os.path.join(work_dir, "chunks"))
    logger.info("Split %s into %s chunks", audio_path, len(chunk_paths))

    results = [transcribe_file(path) for path in chunk_paths]
    offsets = [0.0, *segment_times][: len(results)]
    return Transcript(
        text=merge_transcriptions([result.text for result in results]),
        segments=merge_segments(results, offsets),
        duration_seconds=duration,
    )
