"""Fixed-window request quotas for job submission endpoints."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, Tuple

from fastapi import HTTPException, Request
import redis.asyncio as redis

from config import settings

logger = logging.getLogger(__name__)

_local_counters: Dict[str, Tuple[int, float]] = {}
_local_lock = asyncio.Lock()


@dataclass
class QuotaState:
    count: int
    retry_after_seconds: int


def _client_identifier(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


async def _consume_local_quota(key: str, window_seconds: int) -> QuotaState:
    now = time.time()
    async with _local_lock:
        count, reset_at = _local_counters.get(key, (0, now + window_seconds))
        if now >= reset_at:
            count, reset_at = 0, now + window_seconds
        count += 1
        _local_counters[key] = (count, reset_at)
    return QuotaState(count=count, retry_after_seconds=max(int(reset_at - now), 1))


async def _consume_redis_quota(key: str, window_seconds: int) -> QuotaState:
    client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        async with client.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.ttl(key)
            count, ttl = await pipe.execute()
        if int(ttl) < 0:
            await client.expire(key, window_seconds)
            ttl = window_seconds
    finally:
        await client.aclose()
    return QuotaState(count=int(count), retry_after_seconds=max(int(ttl), 1))


class RateLimit:
    """
    FastAPI dependency counting requests per client and endpoint.

    Counters live in Redis so every API process shares them; while Redis is
    unreachable each process counts locally.
    """

    def __init__(self, prefix: str, limit: int, window_seconds: int):
        self.prefix = prefix
        self.limit = limit
        self.window_seconds = window_seconds

    async def __call__(self, request: Request) -> None:
        if getattr(request.app.state, "disable_rate_limits", False):
            return

        key = f"transcriber:rate:{self.prefix}:{_client_identifier(request)}"
        try:
            state = await _consume_redis_quota(key, self.window_seconds)
        except Exception as exc:
            logger.debug("Rate limit store unavailable for %s: %s", key, exc)
            state = await _consume_local_quota(key, self.window_seconds)

        if state.count > self.limit:
            raise HTTPException(
                status_code=429,
                detail=f"Too many {self.prefix} requests. Try again later.",
                headers={"Retry-After": str(state.retry_after_seconds)},
            )


def rate_limit(prefix: str, limit: int, window_seconds: int) -> RateLimit:
    return RateLimit(prefix, limit, window_seconds)
