"""Artifact persistence for transcript, SRT and VTT files."""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import Optional, Union

import boto3
from botocore.exceptions import ClientError

from config import settings

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "txt": "text/plain; charset=utf-8",
    "srt": "application/x-subrip; charset=utf-8",
    "vtt": "text/vtt; charset=utf-8",
}


def artifact_key(user_id: str, job_id: str, base_name: str, extension: str) -> str:
    """users/<user>/jobs/<job>/<base>_<job>.<ext>"""
    safe_base = "".join(ch if ch.isalnum() or ch in {"-", "_"} else "_" for ch in (base_name or "transcript"))
    return f"users/{user_id}/jobs/{job_id}/{safe_base}_{job_id}.{extension.lstrip('.')}"


def _content_type_for(key: str) -> str:
    extension = key.rsplit(".", 1)[-1].lower()
    return CONTENT_TYPES.get(extension) or mimetypes.guess_type(key)[0] or "application/octet-stream"


def _as_bytes(content: Union[str, bytes]) -> bytes:
    return content.encode("utf-8") if isinstance(content, str) else content


class ArtifactStorage:
    """Writes are idempotent: saving the same key again overwrites it."""

    def save(self, content: Union[str, bytes], key: str, content_type: Optional[str] = None) -> str:
        raise NotImplementedError

    def read(self, key: str) -> bytes:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def url_for(self, key: str) -> str:
        raise NotImplementedError


class LocalArtifactStorage(ArtifactStorage):
    def __init__(self, root: Optional[str] = None, base_url: Optional[str] = None):
        self.root = Path(root or settings.LOCAL_STORAGE_PATH)
        self.base_url = (base_url if base_url is not None else settings.LOCAL_STORAGE_BASE_URL).rstrip("/")

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Storage key escapes storage root: {key}")
        return path

    def save(self, content: Union[str, bytes], key: str, content_type: Optional[str] = None) -> str:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(_as_bytes(content))
        return self.url_for(key)

    def read(self, key: str) -> bytes:
        return self._path(key).read_bytes()

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def url_for(self, key: str) -> str:
        if self.base_url:
            return f"{self.base_url}/{key}"
        return str(self._path(key))


class S3ArtifactStorage(ArtifactStorage):
    def __init__(self, client=None, bucket: Optional[str] = None):
        self.bucket = bucket or settings.S3_BUCKET
        if not self.bucket:
            raise ValueError("S3_BUCKET is not configured")
        self.client = client or boto3.client(
            "s3",
            region_name=settings.S3_REGION or None,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY or None,
            endpoint_url=settings.S3_ENDPOINT_URL or None,
        )

    def save(self, content: Union[str, bytes], key: str, content_type: Optional[str] = None) -> str:
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=_as_bytes(content),
            ContentType=content_type or _content_type_for(key),
        )
        return self.url_for(key)

    def read(self, key: str) -> bytes:
        response = self.client.get_object(Bucket=self.bucket, Key=key)
        return response["Body"].read()

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in {"404", "NoSuchKey", "NotFound"}:
                return False
            raise

    def delete(self, key: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=key)

    def url_for(self, key: str) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=settings.S3_URL_EXPIRATION_SECONDS,
        )


_storage: Optional[ArtifactStorage] = None


def get_artifact_storage() -> ArtifactStorage:
    """Storage backend for this process, chosen once from STORAGE_BACKEND."""
    global _storage
    if _storage is None:
        backend = (settings.STORAGE_BACKEND or "local").strip().lower()
        if backend == "s3":
            _storage = S3ArtifactStorage()
        elif backend == "local":
            _storage = LocalArtifactStorage()
        else:
            raise ValueError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND}")
        logger.info("Artifact storage backend: %s", backend)
    return _storage
