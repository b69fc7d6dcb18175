from unittest.mock import MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from services.rate_limit_tracker import RateLimitTracker, RedisUsageStore


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _tracker(clock, hourly=7200, daily=28800):
    return RateLimitTracker(hourly_limit=hourly, daily_limit=daily, clock=clock)


def test_fresh_tracker_allows_requests_within_limits():
    tracker = _tracker(FakeClock())

    check = tracker.can_process(600)

    assert check.allowed is True
    assert check.hourly_remaining == 7200
    assert check.daily_remaining == 28800
    assert check.estimated_wait_ms is None


def test_usage_is_counted_against_both_windows():
    tracker = _tracker(FakeClock())

    tracker.track_usage(7000.2)
    check = tracker.can_process(300)

    assert check.allowed is False
    assert check.hourly_remaining == 199
    assert check.daily_remaining == 28800 - 7001
    assert 0 < check.estimated_wait_ms <= 3600 * 1000


def test_hourly_window_resets_lazily_after_an_hour():
    clock = FakeClock()
    tracker = _tracker(clock)
    tracker.track_usage(7200)
    assert tracker.can_process(1).allowed is False

    clock.advance(3601)
    check = tracker.can_process(1)

    assert check.allowed is True
    assert check.hourly_remaining == 7200
    assert check.daily_remaining == 28800 - 7200


def test_daily_exhaustion_waits_for_day_reset():
    clock = FakeClock()
    tracker = _tracker(clock, hourly=7200, daily=7200)
    tracker.track_usage(7200)
    clock.advance(3601)

    check = tracker.can_process(60)

    assert check.allowed is False
    assert check.hourly_remaining == 7200
    assert check.daily_remaining == 0
    assert check.estimated_wait_ms == (86400 - 3601) * 1000


def test_reconcile_parses_used_and_retry_delay():
    clock = FakeClock()
    tracker = _tracker(clock)

    info = tracker.reconcile(
        "Rate limit reached for model `whisper-large-v3` on seconds of audio per hour (ASH): "
        "Limit 7200, Used 7150, Requested 300. Please try again in 2m30.5s."
    )

    assert info.used_seconds == 7150
    assert info.reset_delay_ms == 150500
    check = tracker.can_process(100)
    assert check.allowed is False
    assert check.hourly_remaining == 50
    assert check.estimated_wait_ms == 150500

    clock.advance(151)
    assert tracker.can_process(100).allowed is True


def test_reconcile_without_details_blocks_for_an_hour():
    clock = FakeClock()
    tracker = _tracker(clock)

    info = tracker.reconcile("rate limited")

    assert info.used_seconds is None
    assert info.reset_delay_ms == 3600 * 1000
    check = tracker.can_process(1)
    assert check.allowed is False
    assert check.hourly_remaining == 0


def test_usage_stats_report_limits():
    tracker = _tracker(FakeClock())
    tracker.track_usage(120)

    stats = tracker.usage_stats()

    assert stats["hourly"] == {
        "used": 120,
        "limit": 7200,
        "remaining": 7080,
        "resets_at": stats["hourly"]["resets_at"],
    }
    assert stats["daily"]["remaining"] == 28800 - 120


def test_redis_store_falls_back_to_local_counters():
    connection = MagicMock()
    connection.hmget.side_effect = RedisConnectionError("down")
    connection.hset.side_effect = RedisConnectionError("down")
    connection.hincrby.side_effect = RedisConnectionError("down")
    tracker = RateLimitTracker(RedisUsageStore(connection), hourly_limit=100, daily_limit=1000, clock=FakeClock())

    tracker.track_usage(40)
    check = tracker.can_process(70)

    assert check.allowed is False
    assert check.hourly_remaining == 60


def test_redis_store_reads_shared_counters():
    clock = FakeClock()
    connection = MagicMock()
    connection.hmget.return_value = [b"90", str(clock.now + 600).encode()]
    tracker = RateLimitTracker(RedisUsageStore(connection), hourly_limit=100, daily_limit=1000, clock=clock)

    check = tracker.can_process(20)

    assert check.allowed is False
    assert check.hourly_remaining == 10
    connection.hmget.assert_any_call("transcriber:groq_usage:hour", "used", "reset_at")
