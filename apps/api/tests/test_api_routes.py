from unittest.mock import MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.future import select

from database import get_db
from main import app
from models.transcription_job import TranscriptionJob
from models.user import User
from routers import rate_limit as rate_limit_module


@pytest_asyncio.fixture
async def api_client(session_maker):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.pop(get_db, None)


@pytest.mark.asyncio
async def test_submit_transcription_creates_pending_job(api_client, session_maker):
    queue_job = MagicMock(id="transcription:queued")
    with patch("routers.transcribe.enqueue_transcription_job", return_value=queue_job) as enqueue:
        response = await api_client.post(
            "/transcribe",
            json={
                "user_id": "api-user",
                "video_url": "https://www.youtube.com/watch?v=abc123",
                "quality": "premium",
                "summary_type": "basic",
                "callback_url": "https://hooks.example.com/done",
            },
        )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "pending"
    assert data["platform"] == "youtube"
    assert data["quality"] == "premium"
    assert data["requested_quality"] == "premium"
    assert data["queue_job_id"] == "transcription:queued"
    enqueue.assert_called_once_with(data["job_id"], "premium")

    async with session_maker() as db:
        user = (await db.execute(select(User).where(User.id == "api-user"))).scalar_one()
    assert user.credit_balance == 50

    status = await api_client.get(f"/transcribe/{data['job_id']}", params={"user_id": "api-user"})
    assert status.status_code == 200
    assert status.json()["summary_type"] == "basic"

    other_user = await api_client.get(f"/transcribe/{data['job_id']}", params={"user_id": "someone-else"})
    assert other_user.status_code == 404


@pytest.mark.asyncio
async def test_submit_rejects_invalid_sources(api_client):
    with patch("routers.transcribe.enqueue_transcription_job") as enqueue:
        bad_url = await api_client.post(
            "/transcribe", json={"user_id": "api-user", "video_url": "https://example.com/about"}
        )
        captions_elsewhere = await api_client.post(
            "/transcribe",
            json={
                "user_id": "api-user",
                "video_url": "https://www.tiktok.com/@creator/video/1",
                "quality": "caption_first",
            },
        )
        bad_callback = await api_client.post(
            "/transcribe",
            json={
                "user_id": "api-user",
                "video_url": "https://www.youtube.com/watch?v=abc123",
                "callback_url": "ftp://hooks.example.com",
            },
        )
        bad_quality = await api_client.post(
            "/transcribe",
            json={"user_id": "api-user", "video_url": "https://www.youtube.com/watch?v=abc123", "quality": "ultra"},
        )

    assert bad_url.status_code == 422
    assert captions_elsewhere.status_code == 422
    assert bad_callback.status_code == 422
    assert bad_quality.status_code == 422
    enqueue.assert_not_called()


@pytest.mark.asyncio
async def test_queue_outage_marks_job_failed(api_client, session_maker):
    with patch("routers.transcribe.enqueue_transcription_job", side_effect=ConnectionError("redis down")):
        response = await api_client.post(
            "/transcribe",
            json={"user_id": "api-user", "video_url": "https://youtu.be/abc123", "quality": "standard"},
        )

    assert response.status_code == 503

    async with session_maker() as db:
        jobs = (await db.execute(select(TranscriptionJob))).scalars().all()
    assert len(jobs) == 1
    assert jobs[0].status == "failed"
    assert "redis down" in jobs[0].status_message


@pytest.mark.asyncio
async def test_credit_summary_adjustment_and_renewal(api_client):
    summary = await api_client.get("/billing/credits", params={"user_id": "billing-user"})
    assert summary.status_code == 200
    assert summary.json()["balance"] == 50
    assert summary.json()["costs"]["caption_first"] == 1

    added = await api_client.post("/billing/adjust", json={"user_id": "billing-user", "credits": 25})
    assert added.status_code == 200
    assert added.json()["balance_after"] == 75

    too_much = await api_client.post(
        "/billing/adjust", json={"user_id": "billing-user", "credits": 500, "direction": "deduct"}
    )
    assert too_much.status_code == 402
    assert too_much.json()["detail"] == "Insufficient credits. Required: 500, available: 75."

    renewed = await api_client.post("/billing/renew", json={"user_id": "billing-user", "tier": "starter"})
    assert renewed.status_code == 200
    assert renewed.json()["balance_after"] == 200

    summary = await api_client.get("/billing/credits", params={"user_id": "billing-user"})
    data = summary.json()
    assert data["balance"] == 200
    assert data["subscription_tier"] == "starter"
    assert sum(entry["signed_amount"] for entry in data["recent_entries"]) == 200


@pytest.mark.asyncio
async def test_health_endpoints(api_client):
    live = await api_client.get("/health/live")
    ready = await api_client.get("/health/ready")

    assert live.json() == {"alive": True}
    assert ready.status_code == 200
    assert ready.json() == {"ready": True}


@pytest.mark.asyncio
async def test_adjustment_quota_falls_back_to_local_counters(api_client):
    app.state.disable_rate_limits = False

    with patch("routers.rate_limit._consume_redis_quota", side_effect=ConnectionError("redis down")):
        statuses = [
            (await api_client.post("/billing/adjust", json={"user_id": "quota-user", "credits": 1})).status_code
            for _ in range(30)
        ]
        rejected = await api_client.post("/billing/adjust", json={"user_id": "quota-user", "credits": 1})

    assert set(statuses) == {200}
    assert rejected.status_code == 429
    assert int(rejected.headers["Retry-After"]) > 0
    assert list(rate_limit_module._local_counters) == ["transcriber:rate:billing_adjust:127.0.0.1"]
