"""Tests for the per-(client, endpoint) rate limiter."""

import threading

import pytest

from pageguard.ratelimit.limiter import InMemoryRateLimiter, RateLimitConfig


CONFIG = RateLimitConfig(max_requests=5, window_ms=60_000)


class FakeClock:
    def __init__(self, start_ms: float = 1_700_000_000_000.0):
        self.now = start_ms

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return InMemoryRateLimiter(CONFIG, clock=clock)


class TestCheck:
    def test_first_request_allowed(self, limiter):
        result = limiter.check("192.168.1.1", "pages", CONFIG)
        assert result.allowed is True
        assert result.remaining == 4

    def test_remaining_counts_down(self, limiter):
        limiter.check("192.168.1.2", "pages", CONFIG)
        limiter.check("192.168.1.2", "pages", CONFIG)
        result = limiter.check("192.168.1.2", "pages", CONFIG)
        assert result.remaining == 2

    def test_ceiling_request_allowed_next_denied(self, limiter):
        results = [limiter.check("10.0.0.1", "pages", CONFIG) for _ in range(5)]
        assert all(r.allowed for r in results)
        assert results[-1].remaining == 0

        sixth = limiter.check("10.0.0.1", "pages", CONFIG)
        assert sixth.allowed is False
        assert sixth.remaining == 0

    def test_denied_requests_do_not_extend_count(self, limiter):
        for _ in range(8):
            limiter.check("10.0.0.1", "pages", CONFIG)
        info = limiter.info("10.0.0.1", "pages", CONFIG)
        assert info.remaining == 0
        assert limiter._entries["10.0.0.1:pages"].count == 5

    def test_other_endpoint_unaffected(self, limiter):
        for _ in range(6):
            limiter.check("10.0.0.1", "pages", CONFIG)
        result = limiter.check("10.0.0.1", "mint", CONFIG)
        assert result.allowed is True
        assert result.remaining == 4

    def test_other_client_unaffected(self, limiter):
        for _ in range(6):
            limiter.check("10.0.0.1", "pages", CONFIG)
        result = limiter.check("10.0.0.2", "pages", CONFIG)
        assert result.allowed is True

    def test_reset_at_is_window_end(self, limiter, clock):
        first = limiter.check("10.0.0.1", "pages", CONFIG)
        clock.advance(10_000)
        later = limiter.check("10.0.0.1", "pages", CONFIG)
        assert first.reset_at == later.reset_at
        assert first.reset_at.timestamp() * 1000 == pytest.approx(clock.now - 10_000 + 60_000)

    def test_default_config_used_when_omitted(self, clock):
        limiter = InMemoryRateLimiter(RateLimitConfig(2, 1000), clock=clock)
        limiter.check("a", "pages")
        limiter.check("a", "pages")
        assert limiter.check("a", "pages").allowed is False


class TestWindowReset:
    def test_new_window_after_expiry(self, limiter, clock):
        for _ in range(6):
            limiter.check("10.0.0.1", "pages", CONFIG)
        clock.advance(60_001)
        result = limiter.check("10.0.0.1", "pages", CONFIG)
        assert result.allowed is True
        assert result.remaining == 4
        assert limiter._entries["10.0.0.1:pages"].count == 1

    def test_boundary_is_still_same_window(self, limiter, clock):
        for _ in range(5):
            limiter.check("10.0.0.1", "pages", CONFIG)
        clock.advance(60_000)
        assert limiter.check("10.0.0.1", "pages", CONFIG).allowed is False


class TestResetAndInfo:
    def test_reset_single_endpoint(self, limiter):
        for _ in range(6):
            limiter.check("10.0.0.1", "pages", CONFIG)
            limiter.check("10.0.0.1", "mint", CONFIG)
        limiter.reset("10.0.0.1", "pages")
        assert limiter.check("10.0.0.1", "pages", CONFIG).allowed is True
        assert limiter.check("10.0.0.1", "mint", CONFIG).allowed is False

    def test_reset_all_endpoints(self, limiter):
        for _ in range(6):
            limiter.check("10.0.0.1", "pages", CONFIG)
            limiter.check("10.0.0.1", "mint", CONFIG)
        limiter.check("10.0.0.10", "pages", CONFIG)
        limiter.reset("10.0.0.1")
        assert limiter.info("10.0.0.1", "pages", CONFIG) is None
        assert limiter.info("10.0.0.1", "mint", CONFIG) is None
        assert limiter.info("10.0.0.10", "pages", CONFIG) is not None

    def test_info_does_not_count(self, limiter):
        limiter.check("10.0.0.1", "pages", CONFIG)
        for _ in range(10):
            info = limiter.info("10.0.0.1", "pages", CONFIG)
        assert info.remaining == 4
        assert info.allowed is True

    def test_info_none_for_stale(self, limiter, clock):
        limiter.check("10.0.0.1", "pages", CONFIG)
        clock.advance(60_001)
        assert limiter.info("10.0.0.1", "pages", CONFIG) is None

    def test_clear(self, limiter):
        limiter.check("a", "pages", CONFIG)
        limiter.check("b", "mint", CONFIG)
        limiter.clear()
        assert len(limiter) == 0


class TestSweep:
    def test_sweep_removes_only_stale(self, limiter, clock):
        limiter.check("old", "pages", CONFIG)
        clock.advance(30_000)
        limiter.check("fresh", "pages", CONFIG)
        clock.advance(30_001)
        assert limiter.sweep() == 1
        assert limiter.info("fresh", "pages", CONFIG) is not None
        assert len(limiter) == 1


class TestConcurrency:
    def test_threads_cannot_exceed_ceiling(self):
        limiter = InMemoryRateLimiter(RateLimitConfig(50, 60_000))
        allowed = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            for _ in range(25):
                if limiter.check("shared", "pages").allowed:
                    allowed.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(allowed) == 50
