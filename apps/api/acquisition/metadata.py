import logging
import math
from dataclasses import dataclass
from typing import Optional

import ffmpeg
import yt_dlp

from .errors import MetadataUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class VideoMetadata:
    duration_seconds: Optional[float]
    comment_count: Optional[int] = None
    title: Optional[str] = None


def minutes_from_seconds(seconds: float) -> int:
    """Whole minutes, rounded up, never below one."""
    return max(1, math.ceil(float(seconds) / 60))


def fetch_video_metadata(url: str) -> VideoMetadata:
    """
    Read video metadata without downloading the media.
    Raises MetadataUnavailableError when the source cannot be inspected.
    """
    ydl_opts = {
        "skip_download": True,
        "quiet": True,
        "no_warnings": True,
        "noplaylist": True,
    }
    try:
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            info = ydl.extract_info(url, download=False) or {}
    except Exception as e:
        logger.warning(f"Metadata lookup failed for {url}: {e}")
        raise MetadataUnavailableError(f"Could not read video metadata: {e}") from e

    duration = info.get("duration")
    try:
        duration_seconds = float(duration) if duration is not None else None
    except (TypeError, ValueError):
        duration_seconds = None
    if duration_seconds is not None and duration_seconds <= 0:
        duration_seconds = None

    comment_count = info.get("comment_count")
    return VideoMetadata(
        duration_seconds=duration_seconds,
        comment_count=int(comment_count) if isinstance(comment_count, (int, float)) else None,
        title=info.get("title"),
    )


def fetch_top_comments(url: str, max_comments: int, limit: int = 50) -> list[str]:
    """
    Fetch up to max_comments comments and return the most-liked texts.
    """
    ydl_opts = {
        "skip_download": True,
        "getcomments": True,
        "quiet": True,
        "no_warnings": True,
        "noplaylist": True,
        "extractor_args": {"youtube": {"max_comments": [str(max(int(max_comments), 1))]}},
    }
    try:
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            info = ydl.extract_info(url, download=False) or {}
    except Exception as e:
        logger.warning(f"Comment lookup failed for {url}: {e}")
        raise MetadataUnavailableError(f"Could not read video comments: {e}") from e

    comments = [c for c in info.get("comments") or [] if str(c.get("text") or "").strip()]
    comments.sort(key=lambda c: int(c.get("like_count") or 0), reverse=True)
    return [str(c["text"]).strip() for c in comments[:limit]]


def probe_duration_seconds(media_path: str) -> Optional[float]:
    """
    Probe a local media file and return its duration in seconds, or None.
    """
    try:
        probe = ffmpeg.probe(media_path)
        duration = float(probe.get("format", {}).get("duration", 0.0) or 0.0)
        if duration <= 0:
            for stream in probe.get("streams", []):
                duration = float(stream.get("duration", 0.0) or 0.0)
                if duration > 0:
                    break
        return duration if duration > 0 else None
    except Exception as e:
        logger.warning(f"Could not probe duration for {media_path}: {e}")
        return None
