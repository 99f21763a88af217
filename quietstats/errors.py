from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .privacy.ratelimit import RateLimitResult


class QuietstatsError(Exception):
    pass


class ConfigError(QuietstatsError):
    pass


class PayloadError(QuietstatsError):
    """Request body is not something we can read as events (HTTP 400)."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


class PayloadTooLarge(QuietstatsError):
    def __init__(self, code: str = "payload_too_large"):
        super().__init__(code)
        self.code = code


class RateLimited(QuietstatsError):
    def __init__(self, result: "RateLimitResult"):
        super().__init__("rate_limited")
        self.result = result


class SinkError(QuietstatsError):
    """Storage rejected or could not take a batch; nothing from it is acknowledged."""


class AnonymizationError(QuietstatsError):
    """No salt could be obtained, so no visitor can be hashed (HTTP 500)."""
