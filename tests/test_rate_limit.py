"""
Rate Limiting Unit Tests

Tests for token bucket and rate limiter functionality.
"""

from unittest.mock import MagicMock

import pytest

from storefront_otp.core.exceptions import RateLimitError
from storefront_otp.middleware.rate_limit import (
    RateLimiter,
    TokenBucket,
    enforce_client_rate_limit,
)


def make_request(host="127.0.0.1", forwarded=None, limiter=None):
    request = MagicMock()
    request.client.host = host
    request.headers = {"X-Forwarded-For": forwarded} if forwarded else {}
    if limiter is not None:
        request.app.state.client_limiter = limiter
    return request


class FakeTicker:
    """Monotonic clock the test moves by hand."""

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestTokenBucket:
    """Tests for TokenBucket implementation."""

    def test_take_fails_when_empty(self):
        """Verify take fails once the burst is spent."""
        bucket = TokenBucket(capacity=2, refill_rate=0.1, tokens=2.0, updated_at=0.0)

        assert bucket.take(0.0) is True
        assert bucket.take(0.0) is True
        assert bucket.take(0.0) is False

    def test_refill_over_time(self):
        """Verify tokens refill over time, capped at capacity."""
        bucket = TokenBucket(capacity=10, refill_rate=10.0, tokens=0.0, updated_at=0.0)

        assert bucket.take(0.5) is True
        assert bucket.tokens == pytest.approx(4.0)

        bucket.take(60.0)
        assert bucket.tokens == pytest.approx(9.0)


class TestRateLimiter:
    """Tests for RateLimiter implementation."""

    def test_blocks_requests_over_burst(self):
        """Verify requests over burst limit are blocked."""
        limiter = RateLimiter(requests_per_minute=60, burst_capacity=3, clock=FakeTicker())
        request = make_request("192.168.1.1")

        for _ in range(3):
            assert limiter.is_allowed(request) is True

        assert limiter.is_allowed(request) is False

    def test_clients_have_separate_buckets(self):
        limiter = RateLimiter(requests_per_minute=60, burst_capacity=1, clock=FakeTicker())

        assert limiter.is_allowed(make_request("10.0.0.1")) is True
        assert limiter.is_allowed(make_request("10.0.0.2")) is True
        assert limiter.is_allowed(make_request("10.0.0.1")) is False

    def test_forwarded_header_ignored_without_trusted_proxies(self):
        """Verify a client cannot pick a fresh bucket by rotating X-Forwarded-For."""
        limiter = RateLimiter(requests_per_minute=60, burst_capacity=2, clock=FakeTicker())

        allowed = [
            limiter.is_allowed(make_request("198.51.100.9", forwarded=f"203.0.113.{n}"))
            for n in range(5)
        ]

        assert allowed == [True, True, False, False, False]
        assert len(limiter) == 1

    def test_uses_hop_added_by_trusted_proxy(self):
        """Verify only the hop the nearest trusted proxy appended is used."""
        limiter = RateLimiter(trusted_proxies=1)
        request = make_request("10.0.0.1", forwarded="6.6.6.6, 203.0.113.7")

        assert limiter.client_key(request) == "ip:203.0.113.7"

    def test_two_trusted_proxies(self):
        limiter = RateLimiter(trusted_proxies=2)
        request = make_request("10.0.0.1", forwarded="6.6.6.6, 203.0.113.7, 10.0.0.2")

        assert limiter.client_key(request) == "ip:203.0.113.7"

    def test_short_forwarded_chain_falls_back_to_peer(self):
        limiter = RateLimiter(trusted_proxies=2)
        request = make_request("10.0.0.1", forwarded="203.0.113.7")

        assert limiter.client_key(request) == "ip:10.0.0.1"

    def test_cleanup_removes_stale_buckets(self):
        """Verify cleanup removes buckets idle past the limit."""
        clock = FakeTicker()
        limiter = RateLimiter(max_idle_seconds=60, clock=clock)
        limiter.is_allowed(make_request("10.0.0.1"))

        clock.now += 30
        assert limiter.cleanup() == 0

        clock.now += 31
        assert limiter.cleanup() == 1
        assert len(limiter) == 0

    def test_idle_buckets_swept_while_serving(self):
        """Verify the bucket table does not grow with one-off clients."""
        clock = FakeTicker()
        limiter = RateLimiter(sweep_every=10, max_idle_seconds=60, clock=clock)

        for n in range(9):
            limiter.is_allowed(make_request(f"203.0.113.{n}"))
        assert len(limiter) == 9

        clock.now += 120
        limiter.is_allowed(make_request("198.51.100.1"))

        assert len(limiter) == 1


class TestEnforceClientRateLimit:
    """Tests for the FastAPI dependency."""

    @pytest.mark.asyncio
    async def test_raises_when_over_limit(self):
        limiter = RateLimiter(requests_per_minute=60, burst_capacity=1, clock=FakeTicker())
        request = make_request(limiter=limiter)

        await enforce_client_rate_limit(request)
        with pytest.raises(RateLimitError) as exc_info:
            await enforce_client_rate_limit(request)

        assert exc_info.value.reason == "client_rate_limited"
        assert exc_info.value.retry_after == 60
