"""Content idea jobs derived from completed transcriptions."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from acquisition.metadata import fetch_top_comments
from config import settings
from database import async_session_maker
from models.content_idea_job import ContentIdeaJob
from models.transcription_job import JOB_STATUS_COMPLETED, TERMINAL_JOB_STATUSES, TranscriptionJob
from services.credit_costs import InvalidCostInputError, calculate_content_idea_cost
from services.credits import InsufficientCreditsError, refund_credits, reserve_credits
from services.summaries import generate_content_ideas

logger = logging.getLogger(__name__)


class ContentIdeaRequestError(ValueError):
    pass


async def create_content_idea_job(
    user_id: str,
    transcription_job_id: str,
    job_type: str,
    db: AsyncSession,
) -> ContentIdeaJob:
    """Validate the parent transcription and store a pending content idea job."""
    if job_type not in ("normal", "comments"):
        raise ContentIdeaRequestError(f"Unknown content idea job type: {job_type}")

    result = await db.execute(
        select(TranscriptionJob).where(
            TranscriptionJob.id == transcription_job_id,
            TranscriptionJob.user_id == user_id,
        )
    )
    parent = result.scalar_one_or_none()
    if not parent:
        raise LookupError("Transcription job not found")
    if parent.status != JOB_STATUS_COMPLETED or not parent.transcription_text:
        raise ContentIdeaRequestError("Content ideas require a completed transcription.")
    if job_type == "comments":
        if parent.platform != "youtube":
            raise ContentIdeaRequestError("Comment analysis is only available for YouTube videos.")
        # Fails early when the video has too few comments.
        calculate_content_idea_cost(job_type, parent.youtube_comment_count)

    job = ContentIdeaJob(
        id=str(uuid.uuid4()),
        user_id=user_id,
        transcription_job_id=transcription_job_id,
        job_type=job_type,
        status="pending",
        comment_count=parent.youtube_comment_count,
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)
    return job


async def _update_idea_job(job_id: str, **values) -> bool:
    async with async_session_maker() as db:
        result = await db.execute(select(ContentIdeaJob).where(ContentIdeaJob.id == job_id))
        job = result.scalar_one_or_none()
        if not job or job.status in TERMINAL_JOB_STATUSES:
            return False
        for field, value in values.items():
            setattr(job, field, value)
        if values.get("status") in TERMINAL_JOB_STATUSES:
            job.completed_at = datetime.now(timezone.utc)
        await db.commit()
        return True


async def fail_content_idea_job(
    job_id: str,
    user_id: str,
    message: str,
    *,
    refund_amount: Optional[int] = None,
) -> bool:
    """Refund any applied charge, then fail the job. Terminal jobs are left untouched."""
    async with async_session_maker() as db:
        result = await db.execute(select(ContentIdeaJob.status).where(ContentIdeaJob.id == job_id))
        status = result.scalar_one_or_none()
    if status is None or status in TERMINAL_JOB_STATUSES:
        return False
    if refund_amount:
        try:
            async with async_session_maker() as db:
                await refund_credits(user_id, int(refund_amount), db, derived_job_id=job_id)
        except Exception:
            logger.critical("Refund for content idea job %s failed", job_id, exc_info=True)
    return await _update_idea_job(job_id, status="failed", status_message=message[:1000])


async def process_content_idea_job_async(job_id: str) -> None:
    """Charge, generate and store content ideas for one job."""
    async with async_session_maker() as db:
        result = await db.execute(select(ContentIdeaJob).where(ContentIdeaJob.id == job_id))
        job = result.scalar_one_or_none()
        if not job:
            logger.warning("Content idea job %s not found", job_id)
            return
        if job.status in TERMINAL_JOB_STATUSES:
            logger.info("Content idea job %s already %s; skipping", job_id, job.status)
            return
        parent_result = await db.execute(
            select(TranscriptionJob).where(TranscriptionJob.id == job.transcription_job_id)
        )
        parent = parent_result.scalar_one_or_none()

    charged: Optional[int] = job.credits_charged
    try:
        if not parent or parent.status != JOB_STATUS_COMPLETED or not parent.transcription_text:
            raise ContentIdeaRequestError("Parent transcription is not completed.")

        cost = calculate_content_idea_cost(job.job_type, job.comment_count)
        await _update_idea_job(job_id, status="pending_credit_deduction", status_message="Verifying account credits.")
        try:
            async with async_session_maker() as db:
                charge = await reserve_credits(
                    job.user_id,
                    cost,
                    "content_idea_comments" if job.job_type == "comments" else "content_idea_normal",
                    db,
                    derived_job_id=job_id,
                    description=f"Content ideas ({job.job_type}) for transcription {parent.id}",
                )
        except InsufficientCreditsError as exc:
            await _update_idea_job(job_id, status="failed_insufficient_credits", status_message=str(exc))
            return

        charged = int(charge["amount"])
        await _update_idea_job(job_id, status="processing", credits_charged=charged, status_message="Generating ideas.")

        comments = None
        if job.job_type == "comments":
            comments = await asyncio.to_thread(
                fetch_top_comments, parent.video_url, settings.MAX_YOUTUBE_COMMENTS_TO_FETCH
            )
        ideas = await asyncio.to_thread(generate_content_ideas, parent.transcription_text, job.job_type, comments)
        await _update_idea_job(job_id, status="completed", result_text=ideas, status_message="Content ideas generated.")
        logger.info("Content idea job %s completed", job_id)
    except Exception as exc:
        logger.exception("Content idea job %s failed: %s", job_id, exc)
        message = str(exc) if isinstance(exc, (ContentIdeaRequestError, InvalidCostInputError)) else f"Content idea generation failed: {exc}"
        await fail_content_idea_job(job_id, job.user_id, message, refund_amount=charged)


def process_content_idea_job(job_id: str) -> None:
    """RQ worker entrypoint for content idea jobs."""
    asyncio.run(process_content_idea_job_async(job_id))
