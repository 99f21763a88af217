"""
Page-scoped visitor token.

Built only from public, non-invasive signals (user agent, language, screen
size, colour depth, timezone offset). No canvas, WebGL, fonts or audio, and
nothing is read from or written to cookies or storage. The token groups the
events of one page lifetime; the per-generator nonce keeps it from linking
two page loads together.
"""
from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from typing import Optional

from .host import Host, read

FALLBACK_TEXT = "unknown"
FALLBACK_NUMBER = 0


@dataclass(frozen=True)
class FingerprintComponents:
    user_agent: str = FALLBACK_TEXT
    language: str = FALLBACK_TEXT
    screen_width: int = FALLBACK_NUMBER
    screen_height: int = FALLBACK_NUMBER
    color_depth: int = FALLBACK_NUMBER
    timezone_offset: int = FALLBACK_NUMBER

    @classmethod
    def from_host(cls, host: Optional[Host]) -> "FingerprintComponents":
        nav = read(host, "navigator")
        screen = read(host, "screen")
        window = read(host, "window")
        return cls(
            user_agent=str(read(nav, "user_agent", FALLBACK_TEXT)),
            language=str(read(nav, "language", FALLBACK_TEXT)),
            screen_width=_number(read(screen, "width")),
            screen_height=_number(read(screen, "height")),
            color_depth=_number(read(screen, "color_depth")),
            timezone_offset=_number(read(window, "timezone_offset")),
        )

    def canonical(self) -> str:
        return "|".join(
            str(v) for v in (
                self.user_agent,
                self.language,
                self.screen_width,
                self.screen_height,
                self.color_depth,
                self.timezone_offset,
            )
        )


def _number(v) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return FALLBACK_NUMBER


class FingerprintGenerator:
    def __init__(self, nonce: Optional[bytes] = None):
        self._nonce = nonce if nonce is not None else secrets.token_bytes(16)

    def generate(self, components: FingerprintComponents) -> str:
        h = hashlib.blake2b(components.canonical().encode("utf-8", errors="replace"), digest_size=8, key=self._nonce)
        return h.hexdigest()


_process_generator = FingerprintGenerator()


def generate(components: FingerprintComponents) -> str:
    return _process_generator.generate(components)
