"""
Rate Limiting

Token bucket rate limiter keyed by client address, applied to every
public route on top of the per-address OTP cooldown.

The client address is the TCP peer. ``X-Forwarded-For`` is only read when
the service runs behind a known number of proxies, and then only the hop
the nearest trusted proxy recorded is used; anything further left is
client supplied and can be forged.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from fastapi import Request

from storefront_otp.core.exceptions import RateLimitError


logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass
class TokenBucket:
    """Tokens refill continuously up to ``capacity``; one request spends one."""
    capacity: int
    refill_rate: float  # tokens per second
    tokens: float
    updated_at: float

    def take(self, now: float) -> bool:
        elapsed = max(0.0, now - self.updated_at)
        self.tokens = min(float(self.capacity), self.tokens + elapsed * self.refill_rate)
        self.updated_at = now
        if self.tokens < 1:
            return False
        self.tokens -= 1
        return True

    def idle_for(self, now: float) -> float:
        return now - self.updated_at


def forwarded_hops(request: Request) -> List[str]:
    """Addresses listed in ``X-Forwarded-For``, leftmost first."""
    header = request.headers.get("X-Forwarded-For") or ""
    return [hop.strip() for hop in header.split(",") if hop.strip()]


class RateLimiter:
    """
    Per-client token buckets.

    Buckets idle for longer than ``max_idle_seconds`` are dropped by a
    sweep that runs every ``sweep_every`` checks, so the table only holds
    recently active clients.
    """

    def __init__(
        self,
        requests_per_minute: int = 30,
        burst_capacity: int = 10,
        trusted_proxies: int = 0,
        sweep_every: int = 1000,
        max_idle_seconds: float = 3600,
        clock: Clock = time.monotonic,
    ):
        self._buckets: Dict[str, TokenBucket] = {}
        self._capacity = burst_capacity
        self._refill_rate = requests_per_minute / 60.0
        self._trusted_proxies = max(0, trusted_proxies)
        self._sweep_every = max(1, sweep_every)
        self._max_idle = max_idle_seconds
        self._clock = clock
        self._checks = 0

    def __len__(self) -> int:
        return len(self._buckets)

    def client_key(self, request: Request) -> str:
        if self._trusted_proxies:
            hops = forwarded_hops(request)
            if len(hops) >= self._trusted_proxies:
                return f"ip:{hops[-self._trusted_proxies]}"
        return f"ip:{request.client.host if request.client else 'unknown'}"

    def is_allowed(self, request: Request) -> bool:
        now = self._clock()
        self._checks += 1
        if self._checks % self._sweep_every == 0:
            self.cleanup(now)

        key = self.client_key(request)
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = TokenBucket(self._capacity, self._refill_rate, float(self._capacity), now)
            self._buckets[key] = bucket
        return bucket.take(now)

    def cleanup(self, now: Optional[float] = None) -> int:
        """
        Drop buckets nobody has used for ``max_idle_seconds``.

        Returns:
            Number of buckets removed.
        """
        now = self._clock() if now is None else now
        stale = [key for key, bucket in self._buckets.items() if bucket.idle_for(now) > self._max_idle]
        for key in stale:
            del self._buckets[key]
        if stale:
            logger.debug(f"Dropped {len(stale)} idle rate limit buckets")
        return len(stale)


# ============== Dependency ==============

async def enforce_client_rate_limit(request: Request) -> None:
    """
    FastAPI dependency that rejects clients over their request budget.

    Uses the limiter the application factory stored on ``app.state``.
    """
    limiter: RateLimiter = request.app.state.client_limiter
    if not limiter.is_allowed(request):
        raise RateLimitError(
            "Too many requests. Please try again later.",
            reason="client_rate_limited",
            retry_after=60,
        )
