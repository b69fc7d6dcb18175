"""Best-effort completion callbacks to client-supplied URLs."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from config import settings
from models.transcription_job import JOB_STATUS_COMPLETED, TranscriptionJob

logger = logging.getLogger(__name__)

RESPONSE_FORMATS = ("plain_text", "url", "verbose")


def build_success_payload(job: TranscriptionJob, response_format: Optional[str] = None) -> Dict[str, Any]:
    """
    Payload for a completed job.

    "url" carries artifact locators only, "plain_text" carries text only and
    "verbose" (the default) carries both.
    """
    fmt = response_format or job.response_format or "verbose"
    if fmt not in RESPONSE_FORMATS:
        fmt = "verbose"

    response: Dict[str, Any] = {}
    if fmt in ("url", "verbose"):
        response["transcription_url"] = job.transcription_file_url
        response["srt_url"] = job.srt_file_url
        response["vtt_url"] = job.vtt_file_url
    if fmt in ("plain_text", "verbose"):
        response["transcription_text"] = job.transcription_text
        response["srt_text"] = job.srt_file_text
        response["vtt_text"] = job.vtt_file_text
    if job.basic_summary:
        response["basic_summary"] = job.basic_summary
    if job.extended_summary:
        response["extended_summary"] = job.extended_summary

    return {
        "job_id": job.id,
        "status_code": 200,
        "status_message": JOB_STATUS_COMPLETED,
        "quality": job.quality,
        "response": response,
    }


def build_failure_payload(job_id: str, message: str, *, status_code: int = 500) -> Dict[str, Any]:
    return {
        "job_id": job_id,
        "status_code": status_code,
        "status_message": "failed",
        "error": message,
    }


async def send_callback(url: Optional[str], payload: Dict[str, Any]) -> bool:
    """POST payload to url. Failures are logged and reported as False, never raised."""
    if not url:
        return False
    try:
        async with httpx.AsyncClient(timeout=settings.CALLBACK_TIMEOUT_SECONDS) as client:
            response = await client.post(url, json=payload)
        if response.status_code >= 400:
            logger.warning(
                "Callback for job %s to %s returned HTTP %s", payload.get("job_id"), url, response.status_code
            )
            return False
        return True
    except Exception as exc:
        logger.warning("Callback for job %s to %s failed: %s", payload.get("job_id"), url, exc)
        return False
