"""Audio-seconds quota tracking for the remote transcription provider."""

from __future__ import annotations

import logging
import math
import re
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

from redis import Redis

from config import settings

logger = logging.getLogger(__name__)

HOUR_SECONDS = 3600
DAY_SECONDS = 86400
DEFAULT_RESET_DELAY_MS = HOUR_SECONDS * 1000

_USED_RE = re.compile(r"Used (\d+)")
_RETRY_IN_RE = re.compile(r"Please try again in (\d+)m(\d+(?:\.\d+)?)s")


@dataclass
class RateLimitCheck:
    allowed: bool
    hourly_remaining: int
    daily_remaining: int
    estimated_wait_ms: Optional[int] = None


@dataclass
class RateLimitInfo:
    used_seconds: Optional[int]
    reset_delay_ms: int
    estimated_reset_at: datetime


class UsageStore:
    """Holds (used_seconds, window_reset_epoch) per named window."""

    def get(self, window: str) -> Tuple[int, float]:
        raise NotImplementedError

    def set(self, window: str, used: int, reset_at: float) -> None:
        raise NotImplementedError

    def add(self, window: str, seconds: int) -> int:
        raise NotImplementedError


class InMemoryUsageStore(UsageStore):
    def __init__(self):
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()

    def get(self, window: str) -> Tuple[int, float]:
        with self._lock:
            return self._windows.get(window, (0, 0.0))

    def set(self, window: str, used: int, reset_at: float) -> None:
        with self._lock:
            self._windows[window] = (int(used), float(reset_at))

    def add(self, window: str, seconds: int) -> int:
        with self._lock:
            used, reset_at = self._windows.get(window, (0, 0.0))
            used += int(seconds)
            self._windows[window] = (used, reset_at)
            return used


class RedisUsageStore(UsageStore):
    """Shares usage across worker processes; falls back to local counters when Redis is down."""

    def __init__(self, connection: Redis, prefix: str = "transcriber:groq_usage"):
        self._redis = connection
        self._prefix = prefix
        self._local = InMemoryUsageStore()

    def _key(self, window: str) -> str:
        return f"{self._prefix}:{window}"

    def get(self, window: str) -> Tuple[int, float]:
        try:
            values = self._redis.hmget(self._key(window), "used", "reset_at")
        except Exception as exc:
            logger.warning("Rate limit store unavailable, using local counters: %s", exc)
            return self._local.get(window)
        used = int(values[0] or 0)
        reset_at = float(values[1] or 0.0)
        return used, reset_at

    def set(self, window: str, used: int, reset_at: float) -> None:
        try:
            self._redis.hset(self._key(window), mapping={"used": int(used), "reset_at": float(reset_at)})
        except Exception as exc:
            logger.warning("Rate limit store unavailable, using local counters: %s", exc)
            self._local.set(window, used, reset_at)

    def add(self, window: str, seconds: int) -> int:
        try:
            return int(self._redis.hincrby(self._key(window), "used", int(seconds)))
        except Exception as exc:
            logger.warning("Rate limit store unavailable, using local counters: %s", exc)
            return self._local.add(window, seconds)


class RateLimitTracker:
    """
    Tracks consumption of the provider's hourly and daily audio-second quotas.

    Windows reset lazily: the first read after a window's reset time zeroes it.
    """

    def __init__(
        self,
        store: Optional[UsageStore] = None,
        *,
        hourly_limit: Optional[int] = None,
        daily_limit: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store or InMemoryUsageStore()
        self.hourly_limit = int(hourly_limit if hourly_limit is not None else settings.GROQ_WHISPER_ASH)
        self.daily_limit = int(daily_limit if daily_limit is not None else settings.GROQ_WHISPER_ASD)
        self._clock = clock

    def _window(self, name: str, length: int) -> Tuple[int, float]:
        now = self._clock()
        used, reset_at = self.store.get(name)
        if now >= reset_at:
            used, reset_at = 0, now + length
            self.store.set(name, used, reset_at)
        return used, reset_at

    def can_process(self, audio_seconds: float) -> RateLimitCheck:
        needed = max(int(math.ceil(audio_seconds)), 0)
        hourly_used, hourly_reset = self._window("hour", HOUR_SECONDS)
        daily_used, daily_reset = self._window("day", DAY_SECONDS)
        hourly_remaining = max(self.hourly_limit - hourly_used, 0)
        daily_remaining = max(self.daily_limit - daily_used, 0)

        if needed <= hourly_remaining and needed <= daily_remaining:
            return RateLimitCheck(True, hourly_remaining, daily_remaining)

        now = self._clock()
        reset_at = hourly_reset if needed <= daily_remaining else max(hourly_reset, daily_reset)
        wait_ms = max(int((reset_at - now) * 1000), 0)
        return RateLimitCheck(False, hourly_remaining, daily_remaining, estimated_wait_ms=wait_ms)

    def track_usage(self, audio_seconds: float) -> None:
        seconds = max(int(math.ceil(audio_seconds)), 0)
        if seconds == 0:
            return
        self._window("hour", HOUR_SECONDS)
        self._window("day", DAY_SECONDS)
        self.store.add("hour", seconds)
        self.store.add("day", seconds)

    def reconcile(self, error_message: str) -> RateLimitInfo:
        """
        Align local counters with a provider rate-limit error.

        Extracts "Used N" and "Please try again in XmY.Zs" from the message;
        an unparseable delay falls back to one hour.
        """
        message = error_message or ""
        now = self._clock()

        used_seconds: Optional[int] = None
        used_match = _USED_RE.search(message)
        if used_match:
            used_seconds = int(used_match.group(1))

        reset_delay_ms = DEFAULT_RESET_DELAY_MS
        retry_match = _RETRY_IN_RE.search(message)
        if retry_match:
            minutes = int(retry_match.group(1))
            seconds = float(retry_match.group(2))
            reset_delay_ms = int((minutes * 60 + seconds) * 1000)

        reset_at = now + reset_delay_ms / 1000.0
        self.store.set("hour", used_seconds if used_seconds is not None else self.hourly_limit, reset_at)

        logger.warning(
            "Remote transcription rate limit hit: used=%s reset_in_ms=%s", used_seconds, reset_delay_ms
        )
        return RateLimitInfo(
            used_seconds=used_seconds,
            reset_delay_ms=reset_delay_ms,
            estimated_reset_at=datetime.fromtimestamp(reset_at, tz=timezone.utc),
        )

    def usage_stats(self) -> Dict[str, object]:
        hourly_used, hourly_reset = self._window("hour", HOUR_SECONDS)
        daily_used, daily_reset = self._window("day", DAY_SECONDS)
        return {
            "hourly": {
                "used": hourly_used,
                "limit": self.hourly_limit,
                "remaining": max(self.hourly_limit - hourly_used, 0),
                "resets_at": datetime.fromtimestamp(hourly_reset, tz=timezone.utc).isoformat(),
            },
            "daily": {
                "used": daily_used,
                "limit": self.daily_limit,
                "remaining": max(self.daily_limit - daily_used, 0),
                "resets_at": datetime.fromtimestamp(daily_reset, tz=timezone.utc).isoformat(),
            },
        }


_tracker: Optional[RateLimitTracker] = None


def get_rate_limit_tracker() -> RateLimitTracker:
    """Process-wide tracker built from the configured backend."""
    global _tracker
    if _tracker is None:
        if settings.RATE_LIMIT_BACKEND == "redis":
            store: UsageStore = RedisUsageStore(Redis.from_url(settings.REDIS_URL))
        else:
            store = InMemoryUsageStore()
        _tracker = RateLimitTracker(store)
    return _tracker
