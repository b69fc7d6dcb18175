"""
Video Transcriber API - FastAPI Backend
Main application entry point: job submission, credits and health routes.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings, validate_credit_settings
from database import engine, Base
import models  # noqa: F401
from routers import billing, content_ideas, health, transcribe
from services.credits import refresh_free_tier_credits
from services.job_queue import recover_stalled_content_idea_jobs, recover_stalled_transcription_jobs

logger = logging.getLogger(__name__)


async def _periodic_free_tier_refresh() -> None:
    interval_minutes = max(int(settings.FREE_TIER_REFRESH_LOOP_MINUTES), 0)
    if interval_minutes <= 0:
        return
    while True:
        await asyncio.sleep(interval_minutes * 60)
        try:
            result = await refresh_free_tier_credits()
            if result.get("eligible"):
                logger.info(
                    "Free tier refresh: eligible=%s refreshed=%s skipped=%s errors=%s",
                    result.get("eligible", 0),
                    result.get("refreshed", 0),
                    result.get("skipped", 0),
                    len(result.get("errors", [])),
                )
        except Exception:
            logger.exception("Free tier refresh tick failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info("Starting Video Transcriber API...")
    validate_credit_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database schema verified.")
        except Exception as e:
            logger.warning("Database bootstrap skipped: %s", e)
    try:
        recovered = await recover_stalled_transcription_jobs(settings.STALLED_JOB_MAX_AGE_MINUTES)
        if recovered:
            logger.info("Recovered %s stalled transcription jobs after startup.", recovered)
    except Exception as exc:
        logger.warning("Stalled transcription recovery skipped: %s", exc)
    try:
        recovered_ideas = await recover_stalled_content_idea_jobs(settings.STALLED_JOB_MAX_AGE_MINUTES)
        if recovered_ideas:
            logger.info("Recovered %s stalled content idea jobs after startup.", recovered_ideas)
    except Exception as exc:
        logger.warning("Stalled content idea recovery skipped: %s", exc)

    refresh_task = None
    if int(settings.FREE_TIER_REFRESH_LOOP_MINUTES) > 0:
        refresh_task = asyncio.create_task(_periodic_free_tier_refresh())
        logger.info("Free tier refresh loop enabled (every %s min).", int(settings.FREE_TIER_REFRESH_LOOP_MINUTES))
    yield
    if refresh_task is not None:
        refresh_task.cancel()
        try:
            await refresh_task
        except asyncio.CancelledError:
            pass
    logger.info("Shutting down API...")


app = FastAPI(
    title="Video Transcriber API",
    description="Queue video transcriptions billed against a credit ledger",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["Health"])
app.include_router(transcribe.router, prefix="/transcribe", tags=["Transcription"])
app.include_router(content_ideas.router, prefix="/content-ideas", tags=["Content Ideas"])
app.include_router(billing.router, prefix="/billing", tags=["Billing"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Video Transcriber API",
        "version": "0.1.0",
        "status": "running"
    }


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("main:app", host=settings.API_HOST, port=settings.API_PORT)
