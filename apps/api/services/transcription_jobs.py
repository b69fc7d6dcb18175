"""Transcription job execution: credits, acquisition, artifacts and callbacks."""

from __future__ import annotations

import asyncio
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy.future import select

from acquisition.errors import AcquisitionError, MetadataUnavailableError, UnsupportedSourceError
from acquisition.metadata import fetch_video_metadata, minutes_from_seconds, probe_duration_seconds
from acquisition.platforms import get_video_platform, video_id_for_filename
from acquisition.strategies import (
    AcquiredContent,
    AcquisitionContext,
    ensure_audio,
    fallback_for,
    select_strategy,
)
from config import settings
from database import async_session_maker
from models.transcription_job import (
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_FAILED_INSUFFICIENT_CREDITS,
    JOB_STATUS_PENDING_CREDIT_DEDUCTION,
    JOB_STATUS_PROCESSING,
    QUALITY_CAPTION_FIRST,
    TERMINAL_JOB_STATUSES,
    TranscriptionJob,
)
from services.callbacks import build_failure_payload, build_success_payload, send_callback
from services.credit_costs import (
    InvalidCostInputError,
    calculate_credit_cost,
    calculate_summary_cost,
    transaction_type_for_quality,
)
from services.credits import InsufficientCreditsError, refund_credits, reserve_credits
from services.rate_limit_tracker import RateLimitTracker
from services.storage import artifact_key, get_artifact_storage
from services.summaries import SummaryGenerationError, generate_summary

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = {
    "status_message",
    "platform",
    "quality",
    "video_length_minutes_actual",
    "duration_checked",
    "youtube_comment_count",
    "credits_charged",
    "transcription_text",
    "srt_file_text",
    "vtt_file_text",
    "transcription_file_url",
    "srt_file_url",
    "vtt_file_url",
    "basic_summary",
    "extended_summary",
    "queue_job_id",
}


async def _get_job(job_id: str) -> Optional[TranscriptionJob]:
    async with async_session_maker() as db:
        result = await db.execute(select(TranscriptionJob).where(TranscriptionJob.id == job_id))
        return result.scalar_one_or_none()


async def _update_job(
    job_id: str,
    *,
    status: Optional[str] = None,
    increment_attempts: bool = False,
    completed: bool = False,
    **values: Any,
) -> bool:
    """
    Apply changes to a job that is not yet terminal.

    Returns False without writing anything when the job is missing or has
    already reached a terminal status.
    """
    unknown = set(values) - _UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown job fields: {sorted(unknown)}")

    async with async_session_maker() as db:
        result = await db.execute(select(TranscriptionJob).where(TranscriptionJob.id == job_id))
        job = result.scalar_one_or_none()
        if not job:
            return False
        if job.status in TERMINAL_JOB_STATUSES:
            logger.warning("Transcription job %s is already %s; update ignored", job_id, job.status)
            return False
        if status is not None:
            job.status = status
        for field, value in values.items():
            if field == "status_message" and value is not None:
                value = str(value)[:1000]
            setattr(job, field, value)
        if increment_attempts:
            job.attempts = max(int(job.attempts or 0), 0) + 1
        if completed:
            job.completed_at = datetime.now(timezone.utc)
        await db.commit()
        return True


def _failure_message(exc: Exception) -> str:
    if isinstance(exc, (AcquisitionError, InvalidCostInputError)):
        return str(exc)
    if isinstance(exc, SummaryGenerationError):
        return f"Summary generation failed: {exc}"
    return f"Transcription failed: {exc}"


async def _refund_job(job_id: str, user_id: str, amount: Optional[int]) -> None:
    if not amount:
        return
    try:
        async with async_session_maker() as db:
            await refund_credits(
                user_id,
                int(amount),
                db,
                job_id=job_id,
                description=f"Refund for failed transcription job {job_id}",
            )
        logger.info("Refunded %s credits for failed transcription job %s", amount, job_id)
    except Exception:
        logger.critical("Refund of %s credits for job %s (user %s) failed", amount, job_id, user_id, exc_info=True)


async def fail_transcription_job(
    job_id: str,
    user_id: str,
    message: str,
    *,
    refund_amount: Optional[int] = None,
    status: str = JOB_STATUS_FAILED,
    callback_url: Optional[str] = None,
) -> bool:
    """Refund any applied charge, then move the job to a failed terminal status."""
    job = await _get_job(job_id)
    if not job or job.status in TERMINAL_JOB_STATUSES:
        return False
    await _refund_job(job_id, user_id, refund_amount)
    updated = await _update_job(job_id, status=status, status_message=message, completed=True)
    if updated and callback_url:
        status_code = 402 if status == JOB_STATUS_FAILED_INSUFFICIENT_CREDITS else 500
        await send_callback(callback_url, build_failure_payload(job_id, message, status_code=status_code))
    return updated


async def _resolve_video_length(job: TranscriptionJob, context: AcquisitionContext) -> Optional[int]:
    """
    Measure the video length in minutes before any credits are taken.

    Caption-first jobs tolerate an unknown length since their fee is fixed.
    Audio jobs fall back to probing the downloaded audio when the metadata
    carries no duration.
    """
    caption_first = job.quality == QUALITY_CAPTION_FIRST
    try:
        metadata = await asyncio.to_thread(fetch_video_metadata, job.video_url)
    except MetadataUnavailableError:
        if not caption_first:
            raise
        logger.warning("Transcription job %s: duration unavailable, fixed caption fee applies", job.id)
        metadata = None

    seconds = metadata.duration_seconds if metadata else None
    if seconds is None and not caption_first:
        audio_path = await asyncio.to_thread(ensure_audio, context)
        seconds = await asyncio.to_thread(probe_duration_seconds, audio_path)
        if seconds is None:
            raise MetadataUnavailableError("Could not determine the video length.")

    minutes = minutes_from_seconds(seconds) if seconds is not None else None
    await _update_job(
        job.id,
        video_length_minutes_actual=minutes,
        duration_checked=True,
        youtube_comment_count=metadata.comment_count if metadata else None,
    )
    return minutes


def _persist_artifacts(user_id: str, job_id: str, base_name: str, content: AcquiredContent) -> Dict[str, Optional[str]]:
    storage = get_artifact_storage()
    urls: Dict[str, Optional[str]] = {
        "transcription_file_url": storage.save(content.text, artifact_key(user_id, job_id, base_name, "txt")),
        "srt_file_url": None,
        "vtt_file_url": None,
    }
    if content.srt_text:
        urls["srt_file_url"] = storage.save(content.srt_text, artifact_key(user_id, job_id, base_name, "srt"))
    if content.vtt_text:
        urls["vtt_file_url"] = storage.save(content.vtt_text, artifact_key(user_id, job_id, base_name, "vtt"))
    return urls


async def _acquire(job: TranscriptionJob, context: AcquisitionContext, tracker: Optional[RateLimitTracker]) -> AcquiredContent:
    strategy = select_strategy(job.quality, tracker)
    try:
        return await asyncio.to_thread(strategy.acquire, context)
    except Exception as exc:
        substitute = fallback_for(strategy, exc, bool(job.fallback_on_rate_limit))
        if substitute is None:
            raise
        logger.warning(
            "Transcription job %s: %s quota exhausted (%s); falling back to %s",
            job.id,
            strategy.quality,
            exc,
            substitute.quality,
        )
        await _update_job(
            job.id,
            quality=substitute.quality,
            status_message="Remote transcription quota exhausted; continuing with local transcription.",
        )
        return await asyncio.to_thread(substitute.acquire, context)


async def process_transcription_job_async(job_id: str, tracker: Optional[RateLimitTracker] = None) -> None:
    """Run one transcription job end to end. Never raises for job-level failures."""
    job = await _get_job(job_id)
    if not job:
        logger.warning("Transcription job %s not found", job_id)
        return
    if job.status in TERMINAL_JOB_STATUSES:
        logger.info("Transcription job %s already %s; skipping", job_id, job.status)
        return

    platform = job.platform or get_video_platform(job.video_url)
    video_id = video_id_for_filename(job.video_url, platform)
    work_dir = Path(settings.WORK_DIR) / job_id
    context = AcquisitionContext(
        job_id=job_id,
        video_url=job.video_url,
        platform=platform,
        work_dir=str(work_dir),
        video_id=video_id,
    )
    charged: Optional[int] = job.credits_charged
    completed = False

    try:
        work_dir.mkdir(parents=True, exist_ok=True)
        await _update_job(job_id, increment_attempts=True, platform=platform, status_message="Fetching video details.")

        if platform is None:
            raise UnsupportedSourceError("Unsupported or invalid video URL.")
        if job.quality == QUALITY_CAPTION_FIRST and platform != "youtube":
            raise UnsupportedSourceError(
                f"Caption-first transcription is only available for YouTube videos (got {platform})."
            )

        minutes = job.video_length_minutes_actual
        if minutes is None and not job.duration_checked:
            minutes = await _resolve_video_length(job, context)

        cost = calculate_credit_cost(job.requested_quality or job.quality, minutes)
        cost += calculate_summary_cost(job.summary_type)

        await _update_job(
            job_id,
            status=JOB_STATUS_PENDING_CREDIT_DEDUCTION,
            status_message=f"Verifying account credits ({cost} required).",
        )
        try:
            async with async_session_maker() as db:
                charge = await reserve_credits(
                    job.user_id,
                    cost,
                    transaction_type_for_quality(job.requested_quality or job.quality),
                    db,
                    job_id=job_id,
                    minutes=minutes,
                    description=f"{job.requested_quality or job.quality} transcription",
                )
        except InsufficientCreditsError as exc:
            logger.info("Transcription job %s rejected: %s", job_id, exc)
            await fail_transcription_job(
                job_id,
                job.user_id,
                str(exc),
                status=JOB_STATUS_FAILED_INSUFFICIENT_CREDITS,
                callback_url=job.callback_url,
            )
            return

        charged = int(charge["amount"])
        await _update_job(
            job_id,
            status=JOB_STATUS_PROCESSING,
            credits_charged=charged,
            status_message=f"Credits deducted ({charged}). Transcribing.",
        )

        content = await _acquire(job, context, tracker)
        urls = await asyncio.to_thread(_persist_artifacts, job.user_id, job_id, video_id, content)

        summaries: Dict[str, Optional[str]] = {}
        if job.summary_type in ("basic", "extended"):
            await _update_job(job_id, status_message=f"Generating {job.summary_type} summary.")
            summary = await asyncio.to_thread(generate_summary, content.text, job.summary_type)
            summaries[f"{job.summary_type}_summary"] = summary

        completed = await _update_job(
            job_id,
            status=JOB_STATUS_COMPLETED,
            status_message="Transcription completed.",
            transcription_text=content.text,
            srt_file_text=content.srt_text,
            vtt_file_text=content.vtt_text,
            completed=True,
            **urls,
            **summaries,
        )
        if not completed:
            logger.warning("Transcription job %s finished after it was closed elsewhere", job_id)
            return
        logger.info("Transcription job %s completed (quality=%s)", job_id, content.quality_used)
    except Exception as exc:
        logger.exception("Transcription job %s failed: %s", job_id, exc)
        await fail_transcription_job(
            job_id,
            job.user_id,
            _failure_message(exc),
            refund_amount=charged,
            callback_url=job.callback_url,
        )
    finally:
        if not settings.KEEP_WORK_FILES and work_dir.exists():
            shutil.rmtree(work_dir, ignore_errors=True)

    if completed and job.callback_url:
        finished = await _get_job(job_id)
        if finished:
            await send_callback(job.callback_url, build_success_payload(finished))


def process_transcription_job(job_id: str) -> None:
    """RQ worker entrypoint for transcription jobs."""
    asyncio.run(process_transcription_job_async(job_id))
