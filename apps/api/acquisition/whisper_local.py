"""Local Whisper transcription for standard quality jobs."""

from __future__ import annotations

import logging
from typing import Optional

import whisper

from config import settings

from .chunking import transcribe_with_chunking
from .errors import LocalTranscriptionError
from .subtitles import Transcript, segments_from_payload

logger = logging.getLogger(__name__)

# Loaded once per worker process
_MODEL: Optional[whisper.Whisper] = None


def _load_model() -> whisper.Whisper:
    global _MODEL
    if _MODEL is None:
        logger.info("Loading Whisper model %s", settings.WHISPER_MODEL)
        _MODEL = whisper.load_model(settings.WHISPER_MODEL)
    return _MODEL


def _transcribe_file(audio_path: str) -> Transcript:
    try:
        result = _load_model().transcribe(audio_path, language=settings.WHISPER_LANGUAGE)
    except Exception as exc:
        raise LocalTranscriptionError(f"Local transcription failed: {exc}") from exc

    text = str(result.get("text") or "").strip()
    if not text:
        raise LocalTranscriptionError("Local transcription returned empty text")
    return Transcript(text=text, segments=segments_from_payload(result.get("segments")))


def transcribe_local(audio_path: str, work_dir: str) -> Transcript:
    """Transcribe with the local engine, chunking long audio on silence."""
    logger.info("Starting local transcription for %s", audio_path)
    return transcribe_with_chunking(
        audio_path,
        work_dir,
        _transcribe_file,
        max_segment_seconds=settings.LOCAL_CHUNK_MAX_SECONDS,
        force_after_seconds=None,
    )
