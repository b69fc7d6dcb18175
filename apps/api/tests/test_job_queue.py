from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.future import select

from models.content_idea_job import ContentIdeaJob
from models.transcription_job import TranscriptionJob
from models.user import User
from services.content_ideas import fail_content_idea_job
from services.credits import get_credit_balance, reserve_credits
from services.job_queue import (
    PREMIUM_QUEUE_NAME,
    STANDARD_QUEUE_NAME,
    WORKER_QUEUE_NAMES,
    enqueue_transcription_job,
    queue_name_for_quality,
    recover_stalled_content_idea_jobs,
    recover_stalled_transcription_jobs,
)


def test_premium_jobs_have_their_own_queue_drained_first():
    assert queue_name_for_quality("premium") == PREMIUM_QUEUE_NAME
    assert queue_name_for_quality("standard") == STANDARD_QUEUE_NAME
    assert queue_name_for_quality("caption_first") == STANDARD_QUEUE_NAME
    assert WORKER_QUEUE_NAMES[0] == PREMIUM_QUEUE_NAME


def test_enqueue_uses_stable_job_ids():
    queue = MagicMock()
    with patch("services.job_queue.get_queue", return_value=queue) as get_queue:
        enqueue_transcription_job("job-1", "premium")

    get_queue.assert_called_once_with(PREMIUM_QUEUE_NAME)
    args, kwargs = queue.enqueue.call_args
    assert args == ("services.transcription_jobs.process_transcription_job", "job-1")
    assert kwargs["job_id"] == "transcription:job-1"
    assert kwargs["retry"].max == 3


@pytest.mark.asyncio
async def test_stalled_transcriptions_are_failed_and_refunded(session_maker):
    old = datetime.now(timezone.utc) - timedelta(hours=5)
    async with session_maker() as db:
        db.add(User(id="user-1", email="user-1@example.com", credit_balance=100))
        for job_id, status in (("stalled", "processing"), ("recent", "pending"), ("finished", "completed")):
            db.add(
                TranscriptionJob(
                    id=job_id,
                    user_id="user-1",
                    video_url="https://www.youtube.com/watch?v=abc123",
                    requested_quality="standard",
                    quality="standard",
                    status=status,
                    credits_charged=10 if job_id == "stalled" else None,
                    created_at=datetime.now(timezone.utc) if job_id == "recent" else old,
                )
            )
        await db.commit()
    async with session_maker() as db:
        await reserve_credits("user-1", 10, "standard_transcription", db, job_id="stalled")

    recovered = await recover_stalled_transcription_jobs(max_age_minutes=180)

    assert recovered == 1
    async with session_maker() as db:
        jobs = {job.id: job for job in (await db.execute(select(TranscriptionJob))).scalars().all()}
        balance = await get_credit_balance("user-1", db)
    assert jobs["stalled"].status == "failed"
    assert jobs["stalled"].completed_at is not None
    assert jobs["recent"].status == "pending"
    assert jobs["finished"].status == "completed"
    assert balance == 100


@pytest.mark.asyncio
async def test_stalled_content_idea_jobs_are_failed_and_refunded(session_maker):
    old = datetime.now(timezone.utc) - timedelta(hours=3)
    async with session_maker() as db:
        db.add(User(id="user-1", email="user-1@example.com", credit_balance=20))
        db.add(
            TranscriptionJob(
                id="tx-1",
                user_id="user-1",
                video_url="https://www.youtube.com/watch?v=abc123",
                requested_quality="standard",
                quality="standard",
                status="completed",
            )
        )
        db.add(
            ContentIdeaJob(
                id="idea-1",
                user_id="user-1",
                transcription_job_id="tx-1",
                job_type="normal",
                status="processing",
                credits_charged=3,
                created_at=old,
            )
        )
        await db.commit()
    async with session_maker() as db:
        await reserve_credits("user-1", 3, "content_idea_normal", db, derived_job_id="idea-1")

    recovered = await recover_stalled_content_idea_jobs(max_age_minutes=60)

    assert recovered == 1
    async with session_maker() as db:
        job = (await db.execute(select(ContentIdeaJob).where(ContentIdeaJob.id == "idea-1"))).scalar_one()
        balance = await get_credit_balance("user-1", db)
    assert job.status == "failed"
    assert balance == 20


@pytest.mark.asyncio
async def test_recently_active_jobs_are_not_recovered(session_maker):
    now = datetime.now(timezone.utc)
    old = now - timedelta(hours=5)
    async with session_maker() as db:
        db.add(User(id="user-1", email="user-1@example.com", credit_balance=100))
        db.add(
            TranscriptionJob(
                id="long-running",
                user_id="user-1",
                video_url="https://www.youtube.com/watch?v=abc123",
                requested_quality="standard",
                quality="standard",
                status="processing",
                credits_charged=10,
                created_at=old,
                updated_at=now - timedelta(minutes=10),
            )
        )
        db.add(
            TranscriptionJob(
                id="tx-1",
                user_id="user-1",
                video_url="https://www.youtube.com/watch?v=abc123",
                requested_quality="standard",
                quality="standard",
                status="completed",
                created_at=old,
            )
        )
        db.add(
            ContentIdeaJob(
                id="idea-1",
                user_id="user-1",
                transcription_job_id="tx-1",
                job_type="normal",
                status="processing",
                credits_charged=3,
                created_at=old,
                updated_at=now - timedelta(minutes=5),
            )
        )
        await db.commit()
    async with session_maker() as db:
        await reserve_credits("user-1", 10, "standard_transcription", db, job_id="long-running")

    assert await recover_stalled_transcription_jobs(max_age_minutes=180) == 0
    assert await recover_stalled_content_idea_jobs(max_age_minutes=60) == 0

    async with session_maker() as db:
        job = (await db.execute(select(TranscriptionJob).where(TranscriptionJob.id == "long-running"))).scalar_one()
        idea = (await db.execute(select(ContentIdeaJob).where(ContentIdeaJob.id == "idea-1"))).scalar_one()
        balance = await get_credit_balance("user-1", db)
    assert job.status == "processing"
    assert idea.status == "processing"
    assert balance == 90


@pytest.mark.asyncio
async def test_completed_content_idea_job_is_never_failed_or_refunded(session_maker):
    async with session_maker() as db:
        db.add(User(id="user-1", email="user-1@example.com", credit_balance=20))
        db.add(
            TranscriptionJob(
                id="tx-1",
                user_id="user-1",
                video_url="https://www.youtube.com/watch?v=abc123",
                requested_quality="standard",
                quality="standard",
                status="completed",
            )
        )
        db.add(
            ContentIdeaJob(
                id="idea-1",
                user_id="user-1",
                transcription_job_id="tx-1",
                job_type="normal",
                status="processing",
                credits_charged=3,
            )
        )
        await db.commit()
    async with session_maker() as db:
        await reserve_credits("user-1", 3, "content_idea_normal", db, derived_job_id="idea-1")
    async with session_maker() as db:
        idea = (await db.execute(select(ContentIdeaJob).where(ContentIdeaJob.id == "idea-1"))).scalar_one()
        idea.status = "completed"
        idea.result_text = "ideas"
        await db.commit()

    updated = await fail_content_idea_job("idea-1", "user-1", "interrupted", refund_amount=3)

    assert updated is False
    async with session_maker() as db:
        idea = (await db.execute(select(ContentIdeaJob).where(ContentIdeaJob.id == "idea-1"))).scalar_one()
        balance = await get_credit_balance("user-1", db)
    assert idea.status == "completed"
    assert idea.result_text == "ideas"
    assert balance == 17
