from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from botocore.exceptions import ClientError

from models.transcription_job import TranscriptionJob
from services.callbacks import build_failure_payload, build_success_payload, send_callback
from services.storage import LocalArtifactStorage, S3ArtifactStorage, artifact_key


def _completed_job(**overrides):
    values = dict(
        id="job-1",
        user_id="user-1",
        video_url="https://www.youtube.com/watch?v=abc123",
        requested_quality="standard",
        quality="standard",
        status="completed",
        response_format="verbose",
        transcription_text="hello world",
        srt_file_text="1\n00:00:00,000 --> 00:00:01,000\nhello world\n",
        vtt_file_text="WEBVTT\n\n00:00:00.000 --> 00:00:01.000\nhello world\n",
        transcription_file_url="https://files.example.com/t.txt",
        srt_file_url="https://files.example.com/t.srt",
        vtt_file_url="https://files.example.com/t.vtt",
    )
    values.update(overrides)
    return TranscriptionJob(**values)


def test_artifact_keys_are_namespaced_by_user_and_job():
    assert artifact_key("user-1", "job-9", "abc123", "srt") == "users/user-1/jobs/job-9/abc123_job-9.srt"
    assert artifact_key("u", "j", "my video!", ".txt") == "users/u/jobs/j/my_video__j.txt"


def test_local_storage_round_trip_and_overwrite(tmp_path):
    storage = LocalArtifactStorage(root=str(tmp_path), base_url="https://files.example.com/")
    key = artifact_key("user-1", "job-1", "abc", "txt")

    url = storage.save("first", key)
    storage.save("second", key)

    assert url == f"https://files.example.com/{key}"
    assert storage.exists(key)
    assert storage.read(key) == b"second"
    storage.delete(key)
    assert not storage.exists(key)


def test_local_storage_without_base_url_returns_paths(tmp_path):
    storage = LocalArtifactStorage(root=str(tmp_path), base_url="")
    url = storage.save(b"bytes", "users/u/jobs/j/a_j.vtt")
    assert url == str((tmp_path / "users/u/jobs/j/a_j.vtt").resolve())


def test_local_storage_rejects_escaping_keys(tmp_path):
    storage = LocalArtifactStorage(root=str(tmp_path / "root"), base_url="")
    with pytest.raises(ValueError):
        storage.save("x", "../outside.txt")


def test_s3_storage_uses_bucket_and_content_types():
    client = MagicMock()
    client.generate_presigned_url.return_value = "https://bucket.s3.example.com/signed"
    storage = S3ArtifactStorage(client=client, bucket="transcripts")

    url = storage.save("hello", "users/u/jobs/j/a_j.srt")

    assert url == "https://bucket.s3.example.com/signed"
    client.put_object.assert_called_once_with(
        Bucket="transcripts",
        Key="users/u/jobs/j/a_j.srt",
        Body=b"hello",
        ContentType="application/x-subrip; charset=utf-8",
    )


def test_s3_exists_maps_missing_keys_to_false():
    client = MagicMock()
    client.head_object.side_effect = ClientError({"Error": {"Code": "404"}}, "HeadObject")
    storage = S3ArtifactStorage(client=client, bucket="transcripts")
    assert storage.exists("users/u/jobs/j/missing.txt") is False

    client.head_object.side_effect = ClientError({"Error": {"Code": "403"}}, "HeadObject")
    with pytest.raises(ClientError):
        storage.exists("users/u/jobs/j/forbidden.txt")


def test_success_payload_formats():
    job = _completed_job(basic_summary="short summary")

    verbose = build_success_payload(job)
    assert verbose["status_code"] == 200
    assert verbose["status_message"] == "completed"
    assert verbose["quality"] == "standard"
    assert verbose["response"]["transcription_url"] == "https://files.example.com/t.txt"
    assert verbose["response"]["transcription_text"] == "hello world"
    assert verbose["response"]["basic_summary"] == "short summary"

    urls_only = build_success_payload(job, "url")
    assert "transcription_text" not in urls_only["response"]
    assert urls_only["response"]["vtt_url"] == "https://files.example.com/t.vtt"

    text_only = build_success_payload(job, "plain_text")
    assert "srt_url" not in text_only["response"]
    assert text_only["response"]["srt_text"].startswith("1\n")


def test_failure_payload():
    payload = build_failure_payload("job-1", "Insufficient credits. Required: 10, available: 3.", status_code=402)
    assert payload == {
        "job_id": "job-1",
        "status_code": 402,
        "status_message": "failed",
        "error": "Insufficient credits. Required: 10, available: 3.",
    }


@pytest.mark.asyncio
async def test_send_callback_posts_json():
    response = httpx.Response(200, request=httpx.Request("POST", "https://hooks.example.com/done"))
    with patch("services.callbacks.httpx.AsyncClient.post", new=AsyncMock(return_value=response)) as post:
        delivered = await send_callback("https://hooks.example.com/done", {"job_id": "job-1"})

    assert delivered is True
    post.assert_awaited_once_with("https://hooks.example.com/done", json={"job_id": "job-1"})


@pytest.mark.asyncio
async def test_send_callback_failures_are_not_raised():
    error = httpx.ConnectError("connection refused")
    with patch("services.callbacks.httpx.AsyncClient.post", new=AsyncMock(side_effect=error)):
        assert await send_callback("https://hooks.example.com/done", {"job_id": "job-1"}) is False

    response = httpx.Response(500, request=httpx.Request("POST", "https://hooks.example.com/done"))
    with patch("services.callbacks.httpx.AsyncClient.post", new=AsyncMock(return_value=response)):
        assert await send_callback("https://hooks.example.com/done", {"job_id": "job-1"}) is False

    assert await send_callback(None, {"job_id": "job-1"}) is False


@pytest.mark.asyncio
async def test_send_callback_swallows_malformed_urls():
    assert await send_callback("http://[::1/hook", {"job_id": "job-1"}) is False
