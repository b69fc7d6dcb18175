import glob
import logging
import os

import ffmpeg
import yt_dlp

from .errors import AudioDownloadError

logger = logging.getLogger(__name__)


def download_audio(url: str, output_path: str) -> str:
    """
    Download the audio track of a video as MP3 using yt-dlp.
    Returns the path to the downloaded file.
    """
    base_name = os.path.splitext(output_path)[0]
    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    ydl_opts = {
        "format": "bestaudio/best",
        "outtmpl": f"{base_name}.%(ext)s",
        "quiet": True,
        "no_warnings": True,
        "noplaylist": True,
        "overwrites": True,
        "postprocessors": [
            {"key": "FFmpegExtractAudio", "preferredcodec": "mp3", "preferredquality": "128"},
        ],
    }

    try:
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            ydl.download([url])
    except Exception as e:
        logger.error(f"Error downloading audio: {e}")
        raise AudioDownloadError(f"Audio download failed: {e}") from e

    expected = f"{base_name}.mp3"
    if os.path.exists(expected):
        return expected
    # Extraction may leave the original container when the postprocessor is skipped.
    matches = sorted(glob.glob(f"{glob.escape(base_name)}.*"))
    if matches:
        return matches[0]
    raise AudioDownloadError("Audio file not found after download")


def file_size_mb(path: str) -> float:
    return os.path.getsize(path) / (1024 * 1024)


def compress_audio(input_path: str, output_path: str) -> str:
    """
    Re-encode audio as mono VBR MP3 to bring it under upload size limits.
    """
    try:
        (
            ffmpeg
            .input(input_path)
            .output(output_path, acodec="libmp3lame", ac=1, **{"q:a": 4})
            .overwrite_output()
            .run(quiet=True)
        )
        return output_path
    except ffmpeg.Error as e:
        logger.error(f"Error compressing audio: {e.stderr.decode() if e.stderr else str(e)}")
        raise
