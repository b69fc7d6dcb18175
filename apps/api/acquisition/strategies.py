"""
Content acquisition strategies.

A job picks one strategy from its quality level. Remote transcription may
hand over to local transcription once when the remote quota is exhausted.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from models.transcription_job import QUALITY_CAPTION_FIRST, QUALITY_PREMIUM, QUALITY_STANDARD
from services.rate_limit_tracker import RateLimitTracker, get_rate_limit_tracker

from .audio import download_audio
from .captions import download_captions
from .errors import RemoteRateLimitError, UnsupportedSourceError
from .groq import transcribe_remote
from .subtitles import Transcript, build_srt, build_vtt
from .whisper_local import transcribe_local

logger = logging.getLogger(__name__)


@dataclass
class AcquisitionContext:
    job_id: str
    video_url: str
    platform: Optional[str]
    work_dir: str
    video_id: str = "video"
    audio_path: Optional[str] = None


@dataclass
class AcquiredContent:
    text: str
    quality_used: str
    srt_text: Optional[str] = None
    vtt_text: Optional[str] = None
    duration_seconds: Optional[float] = None


def ensure_audio(context: AcquisitionContext) -> str:
    """Download the job's audio once and reuse it across strategies."""
    if context.audio_path and os.path.exists(context.audio_path):
        return context.audio_path
    target = os.path.join(context.work_dir, f"{context.job_id}_{context.video_id}.mp3")
    context.audio_path = download_audio(context.video_url, target)
    return context.audio_path


class AcquisitionStrategy:
    quality: str = ""

    def acquire(self, context: AcquisitionContext) -> AcquiredContent:
        raise NotImplementedError


class CaptionFirstStrategy(AcquisitionStrategy):
    quality = QUALITY_CAPTION_FIRST

    def acquire(self, context: AcquisitionContext) -> AcquiredContent:
        if context.platform != "youtube":
            raise UnsupportedSourceError("Caption-first transcription is only available for YouTube videos.")
        captions = download_captions(
            context.video_url,
            os.path.join(context.work_dir, f"{context.job_id}_{context.video_id}_caption"),
        )
        return AcquiredContent(
            text=captions.plain_text,
            quality_used=self.quality,
            srt_text=captions.srt_text,
            vtt_text=captions.vtt_text,
        )


class _AudioTranscriptionStrategy(AcquisitionStrategy):
    def transcribe(self, audio_path: str, work_dir: str) -> Transcript:
        raise NotImplementedError

    def acquire(self, context: AcquisitionContext) -> AcquiredContent:
        audio_path = ensure_audio(context)
        transcript = self.transcribe(audio_path, os.path.join(context.work_dir, self.quality))
        return AcquiredContent(
            text=transcript.text,
            quality_used=self.quality,
            srt_text=build_srt(transcript.segments) if transcript.segments else None,
            vtt_text=build_vtt(transcript.segments) if transcript.segments else None,
            duration_seconds=transcript.duration_seconds,
        )


class LocalTranscriptionStrategy(_AudioTranscriptionStrategy):
    quality = QUALITY_STANDARD

    def transcribe(self, audio_path: str, work_dir: str) -> Transcript:
        return transcribe_local(audio_path, work_dir)


class RemoteTranscriptionStrategy(_AudioTranscriptionStrategy):
    quality = QUALITY_PREMIUM

    def __init__(self, tracker: Optional[RateLimitTracker] = None):
        self.tracker = tracker or get_rate_limit_tracker()

    def transcribe(self, audio_path: str, work_dir: str) -> Transcript:
        return transcribe_remote(audio_path, work_dir, self.tracker)


def select_strategy(quality: str, tracker: Optional[RateLimitTracker] = None) -> AcquisitionStrategy:
    if quality == QUALITY_CAPTION_FIRST:
        return CaptionFirstStrategy()
    if quality == QUALITY_STANDARD:
        return LocalTranscriptionStrategy()
    if quality == QUALITY_PREMIUM:
        return RemoteTranscriptionStrategy(tracker)
    raise ValueError(f"Unknown transcription quality: {quality!r}")


def fallback_for(
    strategy: AcquisitionStrategy, error: Exception, allow_fallback: bool
) -> Optional[AcquisitionStrategy]:
    """The single permitted substitute after a failure, or None."""
    if allow_fallback and isinstance(strategy, RemoteTranscriptionStrategy) and isinstance(error, RemoteRateLimitError):
        return LocalTranscriptionStrategy()
    return None
