"""Transcription job submission and status router."""

from __future__ import annotations

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from acquisition.platforms import get_video_platform
from database import get_db
from models.transcription_job import JOB_STATUS_FAILED, JOB_STATUS_PENDING, TranscriptionJob
from routers.rate_limit import rate_limit
from services.credits import ensure_user_account
from services.job_queue import enqueue_transcription_job

router = APIRouter()


class CreateTranscriptionRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=200)
    video_url: str = Field(min_length=8, max_length=2000)
    quality: Literal["caption_first", "standard", "premium"] = "standard"
    summary_type: Literal["none", "basic", "extended"] = "none"
    response_format: Literal["plain_text", "url", "verbose"] = "verbose"
    fallback_on_rate_limit: bool = True
    callback_url: Optional[str] = Field(default=None, max_length=2000)


class TranscriptionJobResponse(BaseModel):
    job_id: str
    status: str
    status_message: Optional[str] = None
    video_url: str
    platform: Optional[str] = None
    quality: str
    requested_quality: str
    video_length_minutes: Optional[int] = None
    credits_charged: Optional[int] = None
    summary_type: str
    transcription_text: Optional[str] = None
    transcription_file_url: Optional[str] = None
    srt_file_url: Optional[str] = None
    vtt_file_url: Optional[str] = None
    basic_summary: Optional[str] = None
    extended_summary: Optional[str] = None
    queue_job_id: Optional[str] = None
    attempts: int = 0
    created_at: Optional[str] = None
    completed_at: Optional[str] = None


def _serialize_job(job: TranscriptionJob) -> TranscriptionJobResponse:
    return TranscriptionJobResponse(
        job_id=job.id,
        status=job.status,
        status_message=job.status_message,
        video_url=job.video_url,
        platform=job.platform,
        quality=job.quality,
        requested_quality=job.requested_quality,
        video_length_minutes=job.video_length_minutes_actual,
        credits_charged=job.credits_charged,
        summary_type=job.summary_type or "none",
        transcription_text=job.transcription_text,
        transcription_file_url=job.transcription_file_url,
        srt_file_url=job.srt_file_url,
        vtt_file_url=job.vtt_file_url,
        basic_summary=job.basic_summary,
        extended_summary=job.extended_summary,
        queue_job_id=job.queue_job_id,
        attempts=int(job.attempts or 0),
        created_at=job.created_at.isoformat() if job.created_at else None,
        completed_at=job.completed_at.isoformat() if job.completed_at else None,
    )


@router.post("", response_model=TranscriptionJobResponse)
async def create_transcription_job(
    request: CreateTranscriptionRequest,
    _rate_limit: None = Depends(rate_limit("transcribe_create", limit=60, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    """Create a pending transcription job and enqueue it."""
    video_url = request.video_url.strip()
    platform = get_video_platform(video_url)
    if platform is None:
        raise HTTPException(status_code=422, detail="Unsupported or invalid video URL")
    if request.quality == "caption_first" and platform != "youtube":
        raise HTTPException(status_code=422, detail="caption_first quality is only available for YouTube videos")
    callback_url = (request.callback_url or "").strip() or None
    if callback_url and not callback_url.startswith(("http://", "https://")):
        raise HTTPException(status_code=422, detail="callback_url must be an absolute http(s) URL")

    await ensure_user_account(request.user_id, db)

    job = TranscriptionJob(
        id=str(uuid.uuid4()),
        user_id=request.user_id,
        video_url=video_url,
        platform=platform,
        requested_quality=request.quality,
        quality=request.quality,
        status=JOB_STATUS_PENDING,
        status_message="Queued.",
        summary_type=request.summary_type,
        response_format=request.response_format,
        fallback_on_rate_limit=request.fallback_on_rate_limit,
        callback_url=callback_url,
        attempts=0,
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)

    try:
        queue_job = enqueue_transcription_job(job.id, job.quality)
        job.queue_job_id = queue_job.id
        await db.commit()
        await db.refresh(job)
    except Exception as exc:
        job.status = JOB_STATUS_FAILED
        job.status_message = f"Queue unavailable: {exc}"[:1000]
        await db.commit()
        raise HTTPException(
            status_code=503,
            detail="Transcription queue unavailable. Check Redis/worker availability and retry.",
        ) from exc

    return _serialize_job(job)


@router.get("/{job_id}", response_model=TranscriptionJobResponse)
async def get_transcription_job(
    job_id: str,
    user_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Get transcription job status for a user."""
    result = await db.execute(
        select(TranscriptionJob).where(
            TranscriptionJob.id == job_id,
            TranscriptionJob.user_id == user_id,
        )
    )
    job = result.scalar_one_or_none()
    if not job:
        raise HTTPException(status_code=404, detail="Transcription job not found")
    return _serialize_job(job)
