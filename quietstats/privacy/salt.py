"""
Daily salts for visitor hashing.

A salt lives for one UTC day. When the day ends it is replaced by fresh random
bytes and the old value is dropped: there is no archive and no derivation from
a long-lived secret, so hashes from different days can never be related again.
"""
from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Protocol

import redis
import structlog

from ..clock import Clock, SystemClock, next_utc_midnight
from ..errors import AnonymizationError

log = structlog.get_logger()

SALT_BYTES = 32


@dataclass(frozen=True)
class Salt:
    value: bytes = field(repr=False)
    valid_until: datetime

    def expired(self, now: datetime) -> bool:
        return now >= self.valid_until


class SaltProvider(Protocol):
    def current(self) -> Salt: ...


class RotatingSaltProvider:
    """Process-local salt, replaced lazily on first use after the UTC day boundary."""

    def __init__(self, clock: Optional[Clock] = None, entropy: Callable[[int], bytes] = secrets.token_bytes):
        self._clock = clock or SystemClock()
        self._entropy = entropy
        self._lock = threading.Lock()
        self._salt: Optional[Salt] = None

    def current(self) -> Salt:
        now = self._clock.now()
        with self._lock:
            if self._salt is None or self._salt.expired(now):
                self._salt = self._fresh(now)
            return self._salt

    def rotate(self) -> Salt:
        with self._lock:
            self._salt = self._fresh(self._clock.now())
            return self._salt

    def _fresh(self, now: datetime) -> Salt:
        salt = Salt(self._entropy(SALT_BYTES), next_utc_midnight(now))
        log.info("salt rotated", valid_until=salt.valid_until.isoformat())
        return salt


class RedisSaltProvider:
    """
    Shares one salt per UTC day between every worker of a deployment.

    The first worker to need today's salt writes random bytes under
    ``salt:<date>`` with SET NX; the key expires at the next UTC midnight, so
    Redis forgets it at the same moment the workers stop using it.
    """

    def __init__(self, client: redis.Redis, clock: Optional[Clock] = None, key_prefix: str = "salt:"):
        self._r = client
        self._clock = clock or SystemClock()
        self._prefix = key_prefix
        self._lock = threading.Lock()
        self._cached: Optional[Salt] = None

    def current(self) -> Salt:
        now = self._clock.now()
        with self._lock:
            if self._cached is not None and not self._cached.expired(now):
                return self._cached
            self._cached = None
            valid_until = next_utc_midnight(now)
            key = f"{self._prefix}{now.date().isoformat()}"
            try:
                self._r.set(key, secrets.token_bytes(SALT_BYTES), nx=True, exat=int(valid_until.timestamp()))
                value = self._r.get(key)
            except redis.RedisError as e:
                log.error("salt unavailable", source="redis", error=type(e).__name__)
                raise AnonymizationError("salt store unavailable") from e
            if not value:
                # expired between SET and GET: only possible right at the boundary
                raise AnonymizationError("salt disappeared at day boundary, retry")
            self._cached = Salt(bytes(value), valid_until)
            log.info("salt loaded", source="redis", valid_until=valid_until.isoformat())
            return self._cached
