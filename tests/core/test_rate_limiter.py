"""Tests for the fixed-window rate limiter — deterministic clock, no IO."""

from app.infrastructure.rate_limiter import PRESETS, RateLimiter


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_allows_up_to_limit_then_blocks():
    limiter = RateLimiter(FakeClock())
    results = [limiter.hit("ip:1", 3, 60) for _ in range(4)]
    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]


def test_blocked_result_carries_retry_after():
    clock = FakeClock()
    limiter = RateLimiter(clock)
    limiter.hit("k", 1, 60)
    clock.now += 20
    blocked = limiter.hit("k", 1, 60)
    assert not blocked.allowed
    assert blocked.retry_after == 40


def test_window_resets_after_expiry():
    clock = FakeClock()
    limiter = RateLimiter(clock)
    limiter.hit("k", 1, 60)
    clock.now += 61
    assert limiter.hit("k", 1, 60).allowed


def test_keys_are_independent():
    limiter = RateLimiter(FakeClock())
    assert limiter.hit("a", 1, 60).allowed
    assert limiter.hit("b", 1, 60).allowed
    assert not limiter.hit("a", 1, 60).allowed


def test_headers():
    limiter = RateLimiter(FakeClock(500.0))
    headers = limiter.hit("k", 10, 60).headers()
    assert headers == {
        "X-RateLimit-Limit": "10",
        "X-RateLimit-Remaining": "9",
        "X-RateLimit-Reset": "560",
    }


def test_reset_clears_counters():
    limiter = RateLimiter(FakeClock())
    limiter.hit("k", 1, 60)
    limiter.reset()
    assert limiter.hit("k", 1, 60).allowed


def test_presets():
    assert (PRESETS["auth"].limit, PRESETS["auth"].window_seconds) == (5, 900)
    assert (PRESETS["sensitive"].limit, PRESETS["sensitive"].window_seconds) == (10, 3600)
