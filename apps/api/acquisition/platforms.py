"""Video URL classification."""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import parse_qs, urlparse

DIRECT_VIDEO_EXTENSIONS = (".mp4", ".mov", ".m4v", ".webm", ".avi", ".mkv", ".mp3", ".m4a", ".wav")

_YOUTUBE_HOSTS = {"youtube.com", "www.youtube.com", "m.youtube.com", "music.youtube.com"}
_SHORTS_RE = re.compile(r"^/(?:shorts|live|embed)/([A-Za-z0-9_-]{6,})")


def _host(parsed) -> str:
    return (parsed.hostname or "").lower()


def get_video_platform(url: str) -> Optional[str]:
    """Return youtube, tiktok, instagram, other (direct media link) or None."""
    try:
        parsed = urlparse((url or "").strip())
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https"):
        return None

    host = _host(parsed)
    if host in _YOUTUBE_HOSTS:
        if "v" in parse_qs(parsed.query) or _SHORTS_RE.match(parsed.path):
            return "youtube"
        return None
    if host == "youtu.be":
        return "youtube" if parsed.path.strip("/") else None
    if host == "tiktok.com" or host.endswith(".tiktok.com"):
        return "tiktok"
    if host == "instagram.com" or host.endswith(".instagram.com"):
        return "instagram" if "/reel" in parsed.path or "/p/" in parsed.path else None
    if parsed.path.lower().endswith(DIRECT_VIDEO_EXTENSIONS):
        return "other"
    return None


def video_id_for_filename(url: str, platform: Optional[str]) -> str:
    """Short identifier used to name artifacts, e.g. the YouTube video id."""
    parsed = urlparse(url or "")
    candidate = ""
    if platform == "youtube":
        if _host(parsed) == "youtu.be":
            candidate = parsed.path.strip("/").split("/")[0]
        else:
            candidate = (parse_qs(parsed.query).get("v") or [""])[0]
            if not candidate:
                match = _SHORTS_RE.match(parsed.path)
                candidate = match.group(1) if match else ""
    else:
        parts = [part for part in parsed.path.split("/") if part]
        candidate = parts[-1] if parts else ""
        candidate = candidate.rsplit(".", 1)[0]

    cleaned = "".join(ch if ch.isalnum() or ch in {"-", "_"} else "_" for ch in candidate)
    return cleaned[:64] or "video"
