from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Optional

from .errors import ConfigError

PREFIX = "QUIETSTATS_"


@dataclass(frozen=True)
class Settings:
    redis_url: str = "redis://localhost:6379/0"
    queue: str = "events"
    rate_limit: int = 100
    rate_window: int = 60            # seconds
    max_batch: int = 50
    max_body_bytes: int = 64_000
    trusted_hops: Optional[int] = None   # None = left-most X-Forwarded-For entry
    known_sites: FrozenSet[str] = field(default_factory=frozenset)
    salt_backend: str = "memory"
    limit_backend: str = "memory"
    parquet_dir: str = "data/parquet"
    log_level: str = "INFO"
    log_json: bool = False


def _int(raw: Mapping[str, str], name: str, default: int, lo: int = 1) -> int:
    v = raw.get(PREFIX + name)
    if v is None or not v.strip():
        return default
    try:
        n = int(v)
    except ValueError:
        raise ConfigError(f"{PREFIX}{name} must be an integer, got {v!r}")
    if n < lo:
        raise ConfigError(f"{PREFIX}{name} must be >= {lo}")
    return n


def _bool(raw: Mapping[str, str], name: str, default: bool) -> bool:
    v = raw.get(PREFIX + name)
    if v is None or not v.strip():
        return default
    return v.strip().lower() in ("1", "true", "yes", "on")


def _choice(raw: Mapping[str, str], name: str, default: str, choices) -> str:
    v = (raw.get(PREFIX + name) or default).strip().lower()
    if v not in choices:
        raise ConfigError(f"{PREFIX}{name} must be one of {sorted(choices)}, got {v!r}")
    return v


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    raw = os.environ if environ is None else environ

    hops_raw = (raw.get(PREFIX + "TRUSTED_HOPS") or "").strip()
    trusted_hops = _int(raw, "TRUSTED_HOPS", 0, lo=0) if hops_raw else None

    sites = raw.get(PREFIX + "KNOWN_SITES") or ""
    known_sites = frozenset(s.strip() for s in sites.split(",") if s.strip())

    level = (raw.get(PREFIX + "LOG_LEVEL") or "INFO").strip().upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ConfigError(f"{PREFIX}LOG_LEVEL not understood: {level!r}")

    return Settings(
        redis_url=(raw.get(PREFIX + "REDIS_URL") or Settings.redis_url).strip(),
        queue=(raw.get(PREFIX + "QUEUE") or Settings.queue).strip(),
        rate_limit=_int(raw, "RATE_LIMIT", Settings.rate_limit),
        rate_window=_int(raw, "RATE_WINDOW", Settings.rate_window),
        max_batch=_int(raw, "MAX_BATCH", Settings.max_batch),
        max_body_bytes=_int(raw, "MAX_BODY_BYTES", Settings.max_body_bytes),
        trusted_hops=trusted_hops,
        known_sites=known_sites,
        salt_backend=_choice(raw, "SALT_BACKEND", "memory", {"memory", "redis"}),
        limit_backend=_choice(raw, "LIMIT_BACKEND", "memory", {"memory", "redis"}),
        parquet_dir=(raw.get(PREFIX + "PARQUET_DIR") or Settings.parquet_dir).strip(),
        log_level=level,
        log_json=_bool(raw, "LOG_JSON", False),
    )
