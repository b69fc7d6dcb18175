"""Durable transcription job queue helpers (Redis/RQ)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging

from redis import Redis
from rq import Queue, Retry
from rq.job import Job
from sqlalchemy import func, select

from config import settings
from database import async_session_maker
from models.content_idea_job import ContentIdeaJob
from models.transcription_job import IN_PROGRESS_JOB_STATUSES, QUALITY_PREMIUM, TranscriptionJob
from services.content_ideas import fail_content_idea_job
from services.transcription_jobs import fail_transcription_job

logger = logging.getLogger(__name__)

PREMIUM_QUEUE_NAME = "transcription_premium"
STANDARD_QUEUE_NAME = "transcription_standard"
CONTENT_IDEAS_QUEUE_NAME = "content_ideas"
# Workers drain queues in this order, so premium jobs are picked first.
WORKER_QUEUE_NAMES = [PREMIUM_QUEUE_NAME, STANDARD_QUEUE_NAME, CONTENT_IDEAS_QUEUE_NAME]


def get_redis_connection() -> Redis:
    """Build Redis connection used by RQ."""
    return Redis.from_url(settings.REDIS_URL)


def get_queue(name: str) -> Queue:
    return Queue(
        name=name,
        connection=get_redis_connection(),
        default_timeout=settings.JOB_TIMEOUT_SECONDS,
    )


def queue_name_for_quality(quality: str) -> str:
    return PREMIUM_QUEUE_NAME if quality == QUALITY_PREMIUM else STANDARD_QUEUE_NAME


def enqueue_transcription_job(job_id: str, quality: str) -> Job:
    """Enqueue a transcription job; only worker crashes are redelivered."""
    queue = get_queue(queue_name_for_quality(quality))
    return queue.enqueue(
        "services.transcription_jobs.process_transcription_job",
        job_id,
        job_id=f"transcription:{job_id}",
        retry=Retry(max=3, interval=[30, 120, 300]),
        job_timeout=settings.JOB_TIMEOUT_SECONDS,
        result_ttl=86400,
        failure_ttl=86400,
    )


def enqueue_content_idea_job(job_id: str) -> Job:
    queue = get_queue(CONTENT_IDEAS_QUEUE_NAME)
    return queue.enqueue(
        "services.content_ideas.process_content_idea_job",
        job_id,
        job_id=f"content_ideas:{job_id}",
        retry=Retry(max=3, interval=[15, 60, 180]),
        job_timeout=900,
        result_ttl=86400,
        failure_ttl=86400,
    )


async def recover_stalled_transcription_jobs(max_age_minutes: int = 180) -> int:
    """Fail jobs with no progress since the cutoff and refund what they were charged."""
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=max(max_age_minutes, 1))
    last_activity = func.coalesce(TranscriptionJob.updated_at, TranscriptionJob.created_at)
    async with async_session_maker() as db:
        result = await db.execute(
            select(TranscriptionJob.id, TranscriptionJob.user_id, TranscriptionJob.credits_charged).where(
                TranscriptionJob.status.in_(IN_PROGRESS_JOB_STATUSES),
                last_activity < cutoff,
            )
        )
        stalled = result.all()

    recovered = 0
    for job_id, user_id, credits_charged in stalled:
        updated = await fail_transcription_job(
            job_id,
            user_id,
            "Transcription was interrupted. Submit the video again.",
            refund_amount=credits_charged,
        )
        if updated:
            recovered += 1
            logger.info("Recovered stalled transcription job %s", job_id)
    return recovered


async def recover_stalled_content_idea_jobs(max_age_minutes: int = 180) -> int:
    """Fail content idea jobs with no progress since the cutoff and refund what they were charged."""
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=max(max_age_minutes, 1))
    last_activity = func.coalesce(ContentIdeaJob.updated_at, ContentIdeaJob.created_at)
    async with async_session_maker() as db:
        result = await db.execute(
            select(ContentIdeaJob.id, ContentIdeaJob.user_id, ContentIdeaJob.credits_charged).where(
                ContentIdeaJob.status.in_(IN_PROGRESS_JOB_STATUSES),
                last_activity < cutoff,
            )
        )
        stalled = result.all()

    recovered = 0
    for job_id, user_id, credits_charged in stalled:
        updated = await fail_content_idea_job(
            job_id,
            user_id,
            "Content idea generation was interrupted. Submit it again.",
            refund_amount=credits_charged,
        )
        if updated:
            recovered += 1
            logger.info("Recovered stalled content idea job %s", job_id)
    return recovered
