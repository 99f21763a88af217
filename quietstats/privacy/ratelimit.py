"""
Fixed-window rate limiting keyed by the anonymized visitor hash.

Counters are never keyed by an address. A counter exists only for its window:
the memory store purges finished windows, the Redis store lets them expire.
Graceful degradation: if Redis is unavailable the request is allowed.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Tuple

import redis
import structlog

from ..clock import Clock, SystemClock

log = structlog.get_logger()

DEFAULT_LIMIT = 100
DEFAULT_WINDOW = 60  # seconds
PURGE_EVERY = 60.0


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int        # unix seconds
    retry_after: int     # seconds, 0 when allowed

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }


class CounterStore(Protocol):
    def increment(self, key: str, ttl: int, now: float) -> int:
        """Atomically add one to ``key`` and return the new count."""
        ...


class MemoryCounterStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Dict[str, Tuple[int, float]] = {}   # key -> (count, expires_at)
        self._last_purge = 0.0

    def increment(self, key: str, ttl: int, now: float) -> int:
        with self._lock:
            if now - self._last_purge >= PURGE_EVERY:
                self._purge(now)
            count, expires_at = self._counts.get(key, (0, now + ttl))
            if now >= expires_at:
                count, expires_at = 0, now + ttl
            count += 1
            self._counts[key] = (count, expires_at)
            return count

    def _purge(self, now: float) -> None:
        for k in [k for k, (_, exp) in self._counts.items() if now >= exp]:
            del self._counts[k]
        self._last_purge = now

    def __len__(self) -> int:
        return len(self._counts)


class RedisCounterStore:
    def __init__(self, client: redis.Redis, key_prefix: str = "ratelimit:"):
        self._r = client
        self._prefix = key_prefix

    def increment(self, key: str, ttl: int, now: float) -> int:
        pipe = self._r.pipeline(transaction=True)
        pipe.incr(self._prefix + key)
        pipe.expire(self._prefix + key, ttl)
        count, _ = pipe.execute()
        return int(count)


class RateLimiter:
    def __init__(
        self,
        store: CounterStore,
        limit: int = DEFAULT_LIMIT,
        window: int = DEFAULT_WINDOW,
        clock: Optional[Clock] = None,
    ):
        if limit < 1 or window < 1:
            raise ValueError("limit and window must be positive")
        self.store = store
        self.limit = limit
        self.window = window
        self._clock = clock or SystemClock()

    def hit(self, visitor_hash: str) -> RateLimitResult:
        now = self._clock.now().timestamp()
        window_index = int(now // self.window)
        reset_at = (window_index + 1) * self.window
        ttl = max(int(reset_at - now), 1)
        try:
            count = self.store.increment(f"{visitor_hash}:{window_index}", ttl, now)
        except redis.RedisError as e:
            log.warning("rate limit store unavailable, allowing request", error=type(e).__name__)
            return RateLimitResult(True, self.limit, self.limit, reset_at, 0)

        allowed = count <= self.limit
        return RateLimitResult(
            allowed=allowed,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_at=reset_at,
            retry_after=0 if allowed else max(int(reset_at - now), 1),
        )
