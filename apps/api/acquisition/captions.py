"""Published caption download and caption-to-text conversion."""

from __future__ import annotations

import glob
import logging
import os
import re
from dataclasses import dataclass
from typing import Optional

import yt_dlp

from .errors import CaptionsUnavailableError

logger = logging.getLogger(__name__)

_VTT_HEADER_RE = re.compile(r"^WEBVTT[\s\S]*?\n\n")
_VTT_NOTE_RE = re.compile(r"^NOTE[\s\S]*?\n\n", re.MULTILINE)
_VTT_TIMESTAMP_RE = re.compile(r"^\s*(?:\d{2}:)?\d{2}:\d{2}\.\d{3}\s+-->\s+(?:\d{2}:)?\d{2}:\d{2}\.\d{3}.*$", re.MULTILINE)
_TAG_RE = re.compile(r"<[^>]+>")
_CUE_NUMBER_RE = re.compile(r"^\d+$")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class CaptionFiles:
    plain_text: str
    srt_text: Optional[str] = None
    vtt_text: Optional[str] = None


def extract_plain_text(content: str, fmt: str) -> str:
    """Strip numbering, timing and markup from SRT or VTT content."""
    if not content:
        return ""
    normalized = content.replace("\r\n", "\n")

    if fmt == "vtt":
        body = _VTT_HEADER_RE.sub("", normalized + "\n\n", count=1)
        body = _VTT_NOTE_RE.sub("", body)
        body = _VTT_TIMESTAMP_RE.sub("", body)
        body = _TAG_RE.sub("", body)
        lines = []
        previous = None
        for line in body.split("\n"):
            stripped = line.strip()
            if not stripped or _CUE_NUMBER_RE.match(stripped):
                continue
            # Auto-generated captions repeat the previous cue line.
            if stripped == previous:
                continue
            lines.append(stripped)
            previous = stripped
        return _WHITESPACE_RE.sub(" ", " ".join(lines)).strip()

    if fmt == "srt":
        texts = []
        for block in re.split(r"\n\s*\n", normalized):
            lines = block.strip().split("\n")
            if len(lines) < 3:
                continue
            texts.append(_TAG_RE.sub("", " ".join(lines[2:])))
        return _WHITESPACE_RE.sub(" ", " ".join(text for text in texts if text.strip())).strip()

    raise ValueError(f"Unsupported caption format: {fmt}")


def _read_caption_file(output_base: str, extension: str) -> Optional[str]:
    matches = sorted(glob.glob(f"{glob.escape(output_base)}*.{extension}"))
    for path in matches:
        with open(path, "r", encoding="utf-8", errors="replace") as handle:
            content = handle.read()
        if content.strip():
            return content
        logger.warning("Caption file %s was empty", path)
    return None


def _fetch(url: str, output_base: str, extra_opts: dict) -> None:
    ydl_opts = {
        "skip_download": True,
        "writesubtitles": True,
        "writeautomaticsub": True,
        "subtitleslangs": ["en"],
        "outtmpl": f"{output_base}.%(ext)s",
        "quiet": True,
        "no_warnings": True,
        "noplaylist": True,
        **extra_opts,
    }
    with yt_dlp.YoutubeDL(ydl_opts) as ydl:
        ydl.download([url])


def download_captions(url: str, output_base: str) -> CaptionFiles:
    """
    Fetch English captions (authored or auto-generated) for a YouTube video.

    An SRT conversion is tried first, then native VTT. Either one is enough;
    plain text is taken from SRT when both are present.
    """
    os.makedirs(os.path.dirname(output_base) or ".", exist_ok=True)

    srt_text = None
    try:
        _fetch(
            url,
            output_base,
            {"postprocessors": [{"key": "FFmpegSubtitlesConvertor", "format": "srt"}]},
        )
        srt_text = _read_caption_file(output_base, "srt")
    except Exception as exc:
        logger.warning("SRT caption download failed for %s: %s", url, exc)

    vtt_text = None
    try:
        _fetch(url, output_base, {"subtitlesformat": "vtt"})
        vtt_text = _read_caption_file(output_base, "vtt")
    except Exception as exc:
        logger.warning("VTT caption download failed for %s: %s", url, exc)

    if not srt_text and not vtt_text:
        raise CaptionsUnavailableError("No English captions (SRT or VTT) are available for this video.")

    plain_text = extract_plain_text(srt_text, "srt") if srt_text else ""
    if not plain_text and vtt_text:
        plain_text = extract_plain_text(vtt_text, "vtt")
    if not plain_text:
        raise CaptionsUnavailableError("Caption files were downloaded but contained no text.")

    return CaptionFiles(plain_text=plain_text, srt_text=srt_text, vtt_text=vtt_text)
