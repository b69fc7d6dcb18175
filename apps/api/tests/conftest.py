import os

CREDIT_TEST_ENV = {
    "FREE_TIER_INITIAL_CREDITS": "50",
    "FREE_TIER_REFRESH_CREDITS": "20",
    "FREE_TIER_REFRESH_INTERVAL_DAYS": "7",
    "FREE_TIER_MAX_CREDITS": "60",
    "STARTER_TIER_MONTHLY_CREDITS": "200",
    "PRO_TIER_MONTHLY_CREDITS": "1000",
    "CREDITS_CAPTION_FIRST_FIXED": "1",
    "CREDITS_PER_10_MIN_STANDARD": "5",
    "CREDITS_PER_10_MIN_PREMIUM": "10",
    "CREDITS_BASIC_SUMMARY_FIXED": "2",
    "CREDITS_EXTENDED_SUMMARY_FIXED": "4",
    "CONTENT_IDEA_NORMAL_CREDIT_COST": "3",
    "CONTENT_IDEA_COMMENT_SMALL_CREDIT_COST": "5",
    "CONTENT_IDEA_COMMENT_MEDIUM_CREDIT_COST": "8",
    "CONTENT_IDEA_COMMENT_LARGE_CREDIT_COST": "12",
    "CONTENT_IDEA_COMMENT_XLARGE_CREDIT_COST": "20",
}
os.environ.update(CREDIT_TEST_ENV)
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_default.db")

from contextlib import ExitStack  # noqa: E402
from unittest.mock import patch  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from database import Base  # noqa: E402
from main import app  # noqa: E402
import models  # noqa: E402,F401
from routers import rate_limit  # noqa: E402

SESSION_MAKER_TARGETS = (
    "services.credits.async_session_maker",
    "services.transcription_jobs.async_session_maker",
    "services.content_ideas.async_session_maker",
    "services.job_queue.async_session_maker",
)


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    """Temporary SQLite database wired into every service that opens its own sessions."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'transcriber.db'}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    with ExitStack() as stack:
        for target in SESSION_MAKER_TARGETS:
            stack.enter_context(patch(target, maker))
        yield maker

    await engine.dispose()
