"""
Best-effort delivery of event batches.

``send`` never raises and never retries: a retry without an idempotency key
could count the same pageview twice. Preferred path is the host's beacon
(survives page unload); otherwise an HTTP POST on a background thread.
"""
from __future__ import annotations

import json
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Protocol, Sequence

import httpx
import structlog

from ..events import Event
from .host import Host, read

log = structlog.get_logger("quietstats.client")

DEFAULT_ENDPOINT = "http://127.0.0.1:8123/ingest"


def encode_batch(batch: Sequence[Event]) -> bytes:
    return json.dumps([e.to_wire() for e in batch], separators=(",", ":")).encode("utf-8")


class Transport(Protocol):
    def send(self, batch: Sequence[Event]) -> None: ...


class BeaconTransport:
    def __init__(self, send_beacon: Callable[[str, bytes], bool], endpoint: str = DEFAULT_ENDPOINT, debug: bool = False):
        self._beacon = send_beacon
        self.endpoint = endpoint
        self.debug = debug

    def offer(self, batch: Sequence[Event]) -> bool:
        """True if the host took the batch."""
        try:
            return bool(self._beacon(self.endpoint, encode_batch(batch)))
        except Exception as e:
            if self.debug:
                log.debug("beacon failed", error=repr(e))
            return False

    def send(self, batch: Sequence[Event]) -> None:
        if not self.offer(batch) and self.debug:
            log.debug("beacon refused", events=len(batch))


class RequestTransport:
    """
    HTTP POST on a background thread. The connection pool and the worker
    thread are only created by the first send, so a transport that only
    ever stands behind a working beacon holds nothing open.
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        client: Optional[httpx.Client] = None,
        *,
        timeout: float = 5.0,
        debug: bool = False,
    ):
        self.endpoint = endpoint
        self.debug = debug
        self.timeout = timeout
        self._client = client
        self._pool: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()
        self.closed = False

    def send(self, batch: Sequence[Event]) -> None:
        try:
            with self._lock:
                if self.closed:
                    raise RuntimeError("transport closed")
                if self._pool is None:
                    self._pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="quietstats-send")
                if self._client is None:
                    self._client = httpx.Client(timeout=self.timeout)
                self._pool.submit(self._post, self._client, encode_batch(batch), len(batch))
        except Exception as e:
            # closed already, or the batch would not serialize
            if self.debug:
                log.debug("request not scheduled", error=repr(e))

    def _post(self, client: httpx.Client, body: bytes, n: int) -> None:
        try:
            resp = client.post(self.endpoint, content=body, headers={"Content-Type": "application/json"})
        except httpx.HTTPError as e:
            if self.debug:
                log.debug("request failed", events=n, error=repr(e))
            return
        if self.debug:
            # 429 is logged like any other status: the client never backs off or retries
            log.debug("batch sent", events=n, status=resp.status_code)

    @property
    def opened(self) -> bool:
        return self._pool is not None

    def close(self) -> None:
        """Wait for in-flight posts, then release the connection pool."""
        with self._lock:
            self.closed = True
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=True)
        if self._client is not None:
            self._client.close()


class FallbackTransport:
    """Beacon first; a batch the beacon refused goes out as a request instead."""

    def __init__(self, primary: BeaconTransport, fallback: Transport):
        self.primary = primary
        self.fallback = fallback

    def send(self, batch: Sequence[Event]) -> None:
        if not self.primary.offer(batch):
            self.fallback.send(batch)

    def close(self) -> None:
        close = getattr(self.fallback, "close", None)
        if close is not None:
            close()


def select_transport(host: Optional[Host], endpoint: str = DEFAULT_ENDPOINT, debug: bool = False) -> Transport:
    request = RequestTransport(endpoint, debug=debug)
    send_beacon = read(read(host, "navigator"), "send_beacon")
    if callable(send_beacon):
        return FallbackTransport(BeaconTransport(send_beacon, endpoint, debug=debug), request)
    return request
