"""
Health check endpoints.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
import redis.asyncio as redis

from config import CreditConfigurationError, get_credit_config, settings
from database import engine
from services.rate_limit_tracker import get_rate_limit_tracker

router = APIRouter()


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    Reports database, Redis and remote transcription quota status.
    """
    health_status = {
        "status": "healthy",
        "api": "up",
        "database": "unknown",
        "redis": "unknown",
        "storage_backend": settings.STORAGE_BACKEND,
        "groq_api_key": "configured" if settings.GROQ_API_KEY else "missing",
    }

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        health_status["database"] = "up"
    except Exception as e:
        health_status["database"] = f"down: {str(e)}"
        health_status["status"] = "degraded"

    try:
        r = redis.from_url(settings.REDIS_URL)
        await r.ping()
        await r.aclose()
        health_status["redis"] = "up"
    except Exception as e:
        health_status["redis"] = f"down: {str(e)}"
        health_status["status"] = "degraded"

    health_status["remote_transcription_usage"] = get_rate_limit_tracker().usage_stats()
    return health_status


@router.get("/health/ready")
async def readiness_check():
    """Kubernetes-style readiness probe."""
    missing = []
    try:
        get_credit_config()
    except CreditConfigurationError:
        missing.append("credit configuration")
    if settings.STORAGE_BACKEND == "s3" and not settings.S3_BUCKET:
        missing.append("S3_BUCKET")

    if missing:
        return JSONResponse(
            status_code=503,
            content={"ready": False, "missing": missing},
        )
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}
