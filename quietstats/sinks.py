from __future__ import annotations

import threading
from typing import List, Protocol, Sequence

import redis
import structlog

from .errors import SinkError
from .events import AnonymizedEvent

log = structlog.get_logger()

QUEUE = "events"


class EventSink(Protocol):
    def write(self, records: Sequence[AnonymizedEvent]) -> None:
        """Store all of ``records`` or raise SinkError; never a partial write."""
        ...


class RedisQueueSink:
    """Push each record as JSON onto a Redis list; the parquet writer drains it."""

    def __init__(self, client: redis.Redis, queue: str = QUEUE):
        self._r = client
        self.queue = queue

    def write(self, records: Sequence[AnonymizedEvent]) -> None:
        if not records:
            return
        try:
            pipe = self._r.pipeline(transaction=True)
            for rec in records:
                pipe.rpush(self.queue, rec.model_dump_json())
            pipe.execute()
        except redis.RedisError as e:
            log.error("sink write failed", queue=self.queue, records=len(records), error=type(e).__name__)
            raise SinkError("redis queue unavailable") from e


class MemorySink:
    def __init__(self):
        self._lock = threading.Lock()
        self.records: List[AnonymizedEvent] = []

    def write(self, records: Sequence[AnonymizedEvent]) -> None:
        with self._lock:
            self.records.extend(records)
