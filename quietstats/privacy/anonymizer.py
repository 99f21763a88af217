"""
Visitor anonymization.

The caller's address is only ever handled inside this module: ``hash_request``
resolves it from the request headers and hashes it in the same call. Nothing
here returns, stores or logs it, and there is no API to get it back.
"""
from __future__ import annotations

import hashlib
from typing import Mapping, Optional

from .salt import Salt, SaltProvider

UNKNOWN = "unknown"


def _forwarded_chain(headers: Mapping[str, str]) -> list:
    xff = headers.get("x-forwarded-for") or headers.get("X-Forwarded-For") or ""
    return [p.strip() for p in xff.split(",") if p.strip()]


def _client_address(headers: Mapping[str, str], peer: Optional[str], trusted_hops: Optional[int]) -> str:
    if trusted_hops != 0:
        chain = _forwarded_chain(headers)
        if chain:
            if trusted_hops is None:
                # single trusted proxy: left-most entry is the original client
                return chain[0]
            # entries left of the trusted hops were written by the client itself
            return chain[max(len(chain) - trusted_hops, 0)]
    return peer or UNKNOWN


class Anonymizer:
    def __init__(self, salts: SaltProvider, trusted_proxy_hops: Optional[int] = None):
        self._salts = salts
        self._hops = trusted_proxy_hops

    def current_salt(self) -> Salt:
        return self._salts.current()

    def hash(self, ip: str, user_agent: str) -> str:
        salt = self._salts.current()  # read once: a request never mixes two salts
        h = hashlib.sha256()
        h.update((ip or UNKNOWN).encode("utf-8", errors="replace"))
        h.update(b"|")
        h.update((user_agent or UNKNOWN).encode("utf-8", errors="replace"))
        h.update(b"|")
        h.update(salt.value)
        return h.hexdigest()

    def hash_request(self, headers: Mapping[str, str], peer: Optional[str]) -> str:
        ua = headers.get("user-agent") or headers.get("User-Agent") or UNKNOWN
        return self.hash(_client_address(headers, peer, self._hops), ua)
