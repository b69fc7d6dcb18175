"""Content idea job router."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import get_db
from models.content_idea_job import ContentIdeaJob
from routers.rate_limit import rate_limit
from services.content_ideas import ContentIdeaRequestError, create_content_idea_job
from services.credit_costs import InvalidCostInputError
from services.job_queue import enqueue_content_idea_job

router = APIRouter()


class CreateContentIdeaRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=200)
    transcription_job_id: str = Field(min_length=1, max_length=200)
    job_type: Literal["normal", "comments"] = "normal"


class ContentIdeaJobResponse(BaseModel):
    job_id: str
    transcription_job_id: str
    job_type: str
    status: str
    status_message: Optional[str] = None
    credits_charged: Optional[int] = None
    result_text: Optional[str] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None


def _serialize_job(job: ContentIdeaJob) -> ContentIdeaJobResponse:
    return ContentIdeaJobResponse(
        job_id=job.id,
        transcription_job_id=job.transcription_job_id,
        job_type=job.job_type,
        status=job.status,
        status_message=job.status_message,
        credits_charged=job.credits_charged,
        result_text=job.result_text,
        created_at=job.created_at.isoformat() if job.created_at else None,
        completed_at=job.completed_at.isoformat() if job.completed_at else None,
    )


@router.post("", response_model=ContentIdeaJobResponse)
async def create_content_ideas(
    request: CreateContentIdeaRequest,
    _rate_limit: None = Depends(rate_limit("content_ideas_create", limit=30, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    try:
        job = await create_content_idea_job(request.user_id, request.transcription_job_id, request.job_type, db)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (ContentIdeaRequestError, InvalidCostInputError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    try:
        queue_job = enqueue_content_idea_job(job.id)
        job.queue_job_id = queue_job.id
        await db.commit()
        await db.refresh(job)
    except Exception as exc:
        job.status = "failed"
        job.status_message = f"Queue unavailable: {exc}"[:1000]
        await db.commit()
        raise HTTPException(status_code=503, detail="Content idea queue unavailable. Retry later.") from exc

    return _serialize_job(job)


@router.get("/{job_id}", response_model=ContentIdeaJobResponse)
async def get_content_idea_job(
    job_id: str,
    user_id: str,
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(ContentIdeaJob).where(ContentIdeaJob.id == job_id, ContentIdeaJob.user_id == user_id)
    )
    job = result.scalar_one_or_none()
    if not job:
        raise HTTPException(status_code=404, detail="Content idea job not found")
    return _serialize_job(job)
