"""Remote Whisper transcription on Groq's OpenAI-compatible endpoint."""

from __future__ import annotations

import logging
import time
from typing import Optional

from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI, RateLimitError

from config import settings
from services.rate_limit_tracker import RateLimitTracker

from .chunking import transcribe_with_chunking
from .errors import ProviderConfigurationError, RemoteRateLimitError, RemoteTranscriptionError
from .metadata import probe_duration_seconds
from .subtitles import Transcript, segments_from_payload

logger = logging.getLogger(__name__)


def get_groq_client() -> OpenAI:
    api_key = (settings.GROQ_API_KEY or "").strip()
    if not api_key:
        raise ProviderConfigurationError("GROQ_API_KEY is not configured")
    return OpenAI(
        api_key=api_key,
        base_url=settings.GROQ_BASE_URL,
        timeout=settings.GROQ_REQUEST_TIMEOUT_SECONDS,
        max_retries=0,
    )


def _field(response, name: str):
    if isinstance(response, dict):
        return response.get(name)
    return getattr(response, name, None)


def _transcribe_file(
    audio_path: str,
    tracker: RateLimitTracker,
    client: OpenAI,
    sleep=time.sleep,
) -> Transcript:
    duration: Optional[float] = probe_duration_seconds(audio_path)
    check = tracker.can_process(duration or 0)
    if not check.allowed:
        raise RemoteRateLimitError(
            "Remote transcription quota exhausted "
            f"(hourly remaining {check.hourly_remaining}s, daily remaining {check.daily_remaining}s)",
            retry_after_ms=check.estimated_wait_ms,
        )

    attempts = max(int(settings.GROQ_MAX_RETRY_ATTEMPTS), 1)
    for attempt in range(1, attempts + 1):
        try:
            with open(audio_path, "rb") as audio_file:
                response = client.audio.transcriptions.create(
                    model=settings.GROQ_MODEL,
                    file=audio_file,
                    response_format="verbose_json",
                    language="en",
                    temperature=0,
                )
        except RateLimitError as exc:
            info = tracker.reconcile(str(exc))
            wait_seconds = info.reset_delay_ms / 1000.0
            if attempt < attempts and wait_seconds <= settings.GROQ_MAX_RETRY_WAIT_SECONDS:
                logger.info("Groq rate limited, retrying in %.1fs (attempt %s/%s)", wait_seconds, attempt, attempts)
                sleep(wait_seconds)
                continue
            raise RemoteRateLimitError(str(exc), retry_after_ms=info.reset_delay_ms) from exc
        except (APITimeoutError, APIConnectionError) as exc:
            if attempt < attempts:
                backoff = min(2 ** attempt, settings.GROQ_MAX_RETRY_WAIT_SECONDS)
                logger.warning("Groq request failed (%s), retrying in %ss", exc, backoff)
                sleep(backoff)
                continue
            raise RemoteTranscriptionError(f"Remote transcription unavailable: {exc}") from exc
        except APIStatusError as exc:
            raise RemoteTranscriptionError(f"Remote transcription failed ({exc.status_code}): {exc}") from exc

        text = str(_field(response, "text") or "").strip()
        reported_duration = _field(response, "duration")
        billed_seconds = float(reported_duration or duration or 0)
        tracker.track_usage(billed_seconds)
        if not text:
            raise RemoteTranscriptionError("Remote transcription returned empty text")
        return Transcript(
            text=text,
            segments=segments_from_payload(_field(response, "segments")),
            duration_seconds=billed_seconds or None,
        )

    raise RemoteTranscriptionError("Remote transcription failed after retries")


def transcribe_remote(audio_path: str, work_dir: str, tracker: RateLimitTracker) -> Transcript:
    """Transcribe with the remote engine; RemoteRateLimitError signals an exhausted quota."""
    client = get_groq_client()
    logger.info("Starting remote transcription for %s", audio_path)
    return transcribe_with_chunking(
        audio_path,
        work_dir,
        lambda path: _transcribe_file(path, tracker, client),
        max_segment_seconds=settings.REMOTE_CHUNK_MAX_SECONDS,
    )
