import pytest

from app.shaderhouse.ratelimit import ContentRateLimiter, FixedWindowRateLimiter, client_identifier


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_fixed_window_blocks_after_limit_and_resets():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(3, 60, clock=clock)

    results = [limiter.check("ip") for _ in range(4)]
    assert [r.allowed for r in results] == [True, True, True, False]
    assert results[0].remaining == 2
    assert results[3].remaining == 0

    clock.now += 61
    assert limiter.check("ip").allowed


def test_fixed_window_reset_and_cleanup():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(1, 60, clock=clock)
    limiter.check("a")
    assert not limiter.check("a").allowed
    limiter.reset("a")
    assert limiter.check("a").allowed

    limiter.check("b")
    clock.now += 120
    assert limiter.cleanup() == 2
    assert len(limiter) == 0


def test_client_identifier_includes_email():
    ident = client_identifier("1.2.3.4", "Mozilla/5.0", "a@b.co")
    assert ident.startswith("1.2.3.4:")
    assert ident.endswith(":a@b.co")
    assert client_identifier(None, None) == "unknown-ip:unknown-ua"


def test_content_limiter_check_does_not_count():
    limiter = ContentRateLimiter(clock=FakeClock())
    for _ in range(5):
        assert limiter.check(1, "thread").allowed


def test_content_limiter_thread_hourly_window():
    clock = FakeClock()
    limiter = ContentRateLimiter(clock=clock)
    for _ in range(3):
        assert limiter.check(1, "thread").allowed
        limiter.record(1, "thread")

    blocked = limiter.check(1, "thread")
    assert not blocked.allowed
    assert blocked.limit == 3
    assert blocked.limit_type == "hourly"

    # other users are unaffected
    assert limiter.check(2, "thread").allowed

    clock.now += 60 * 60
    assert limiter.check(1, "thread").allowed


def test_content_limiter_daily_window_outlasts_hourly():
    clock = FakeClock()
    limiter = ContentRateLimiter(clock=clock)
    for _ in range(10):
        clock.now += 60 * 60
        limiter.record(1, "thread")
    result = limiter.check(1, "thread")
    assert not result.allowed
    assert result.limit_type == "daily"


def test_content_limiter_unknown_type():
    with pytest.raises(ValueError):
        ContentRateLimiter().check(1, "poll")


def test_content_limiter_sweeps_stale_windows_while_recording():
    clock = FakeClock()
    limiter = ContentRateLimiter(clock=clock)
    for day in range(5):
        clock.now += 2 * 24 * 60 * 60
        for user_id in range(100):
            limiter.record(f"{day}-{user_id}", "thread")

    # hourly + daily window for each of the last day's users only
    assert len(limiter) == 200
    assert limiter.check("0-1", "thread").remaining == 2
