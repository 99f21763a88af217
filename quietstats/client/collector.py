from __future__ import annotations

import threading
from typing import List, Optional

from ..events import Event
from .scheduler import Handle, Scheduler, ThreadingScheduler
from .transport import Transport

BATCH_SIZE = 10
FLUSH_INTERVAL = 5.0  # seconds


class EventCollector:
    """
    Outbound queue. Events leave in FIFO batches of at most ``batch_size``,
    either when the queue fills a batch or ``flush_interval`` after the timer
    was armed. At most one timer is live; leftovers after a flush re-arm it.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        batch_size: int = BATCH_SIZE,
        flush_interval: float = FLUSH_INTERVAL,
        scheduler: Optional[Scheduler] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if flush_interval <= 0:
            raise ValueError("flush_interval must be > 0")
        self.transport = transport
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.scheduler = scheduler or ThreadingScheduler()
        self._lock = threading.RLock()
        self._queue: List[Event] = []
        self._timer: Optional[Handle] = None

    def add(self, event: Event) -> None:
        with self._lock:
            self._queue.append(event.model_copy(update={"queued_at": self.scheduler.now()}))
            if len(self._queue) >= self.batch_size:
                self.flush()
            elif self._timer is None:
                self._arm()

    def flush(self) -> None:
        with self._lock:
            self._disarm()
            if not self._queue:
                return
            batch = self._queue[:self.batch_size]
            del self._queue[:self.batch_size]
            try:
                self.transport.send(batch)
            finally:
                if self._queue and self._timer is None:
                    self._arm()

    def clear(self) -> None:
        """Drop everything queued and the timer. Does not flush."""
        with self._lock:
            self._disarm()
            self._queue.clear()

    def queue_length(self) -> int:
        with self._lock:
            return len(self._queue)

    def timer_armed(self) -> bool:
        with self._lock:
            return self._timer is not None

    def _arm(self) -> None:
        handle_box: List[Handle] = []

        def fire():
            with self._lock:
                # a flush or clear may have replaced this timer after it was due
                if not handle_box or self._timer is not handle_box[0]:
                    return
                self._timer = None
                self.flush()

        handle = self.scheduler.call_later(self.flush_interval, fire)
        handle_box.append(handle)
        self._timer = handle

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
