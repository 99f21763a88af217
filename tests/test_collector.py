import threading

import pytest

from conftest import make_event
from quietstats.client.collector import EventCollector
from quietstats.client.scheduler import ThreadingScheduler


def urls(batch):
    return [e.url for e in batch]


class TestTimerFlush:
    def test_nothing_sent_before_interval(self, transport, scheduler):
        c = EventCollector(transport, batch_size=10, flush_interval=5.0, scheduler=scheduler)
        for i in range(3):
            c.add(make_event(f"/p{i}"))
        scheduler.advance(4.999)
        assert transport.batches == []
        scheduler.advance(0.002)
        assert len(transport.batches) == 1
        assert urls(transport.batches[0]) == ["/p0", "/p1", "/p2"]
        assert c.queue_length() == 0
        assert not c.timer_armed()

    def test_single_timer_armed_by_first_event(self, transport, scheduler):
        c = EventCollector(transport, batch_size=10, flush_interval=5.0, scheduler=scheduler)
        c.add(make_event("/a"))
        scheduler.advance(3)
        c.add(make_event("/b"))
        assert scheduler.pending() == 1
        scheduler.advance(2)
        assert urls(transport.batches[0]) == ["/a", "/b"]

    def test_stale_timer_does_not_fire(self, transport, scheduler):
        c = EventCollector(transport, batch_size=10, flush_interval=5.0, scheduler=scheduler)
        c.add(make_event("/a"))
        c.flush()
        scheduler.advance(4)
        c.add(make_event("/b"))
        scheduler.advance(1.5)   # first timer's deadline has passed
        assert len(transport.batches) == 1
        scheduler.advance(3.5)
        assert [urls(b) for b in transport.batches] == [["/a"], ["/b"]]

    def test_threading_scheduler_flushes(self):
        sent = threading.Event()

        class Signal:
            def send(self, batch):
                sent.set()

        c = EventCollector(Signal(), batch_size=10, flush_interval=0.05, scheduler=ThreadingScheduler())
        c.add(make_event())
        assert sent.wait(2.0)


class TestSizeFlush:
    def test_full_batches_go_immediately_in_order(self, transport, scheduler):
        c = EventCollector(transport, batch_size=10, flush_interval=5.0, scheduler=scheduler)
        for i in range(25):
            c.add(make_event(f"/p{i}"))
        assert len(transport.batches) == 2
        assert all(len(b) == 10 for b in transport.batches)
        scheduler.advance(5)
        assert len(transport.batches) == 3
        assert [u for b in transport.batches for u in urls(b)] == [f"/p{i}" for i in range(25)]

    def test_size_flush_disarms_timer(self, transport, scheduler):
        c = EventCollector(transport, batch_size=2, flush_interval=5.0, scheduler=scheduler)
        c.add(make_event("/a"))
        c.add(make_event("/b"))
        assert not c.timer_armed()
        assert scheduler.pending() == 0

    def test_manual_flush_sends_partial_batch(self, transport, scheduler):
        c = EventCollector(transport, batch_size=3, flush_interval=1.0, scheduler=scheduler)
        c.add(make_event("/a"))
        c.add(make_event("/b"))
        c.flush()
        assert [urls(b) for b in transport.batches] == [["/a", "/b"]]
        assert not c.timer_armed()


    def test_leftovers_rearm_after_failed_send(self, scheduler):
        class FlakyTransport:
            def __init__(self):
                self.batches = []
                self.failures = 1

            def send(self, batch):
                if self.failures:
                    self.failures -= 1
                    raise RuntimeError("offline")
                self.batches.append(list(batch))

        flaky = FlakyTransport()
        c = EventCollector(flaky, batch_size=3, flush_interval=1.0, scheduler=scheduler)
        c.add(make_event("/a"))
        c.add(make_event("/b"))
        c.batch_size = 1
        with pytest.raises(RuntimeError):
            c.flush()
        assert c.queue_length() == 1
        assert c.timer_armed()
        scheduler.advance(1.0)
        assert [urls(b) for b in flaky.batches] == [["/b"]]
        assert c.queue_length() == 0


class TestClear:
    def test_clear_then_flush_sends_nothing(self, transport, scheduler):
        c = EventCollector(transport, batch_size=10, flush_interval=5.0, scheduler=scheduler)
        c.add(make_event())
        c.add(make_event())
        c.clear()
        assert c.queue_length() == 0
        c.flush()
        scheduler.advance(10)
        assert transport.batches == []

    def test_flush_on_empty_queue_is_noop(self, transport, scheduler):
        EventCollector(transport, scheduler=scheduler).flush()
        assert transport.batches == []


def test_add_stamps_copy(transport, scheduler):
    scheduler.advance(7.5)
    c = EventCollector(transport, batch_size=1, scheduler=scheduler)
    original = make_event()
    c.add(original)
    assert original.queued_at is None
    assert transport.batches[0][0].queued_at == 7.5


@pytest.mark.parametrize("kw", [{"batch_size": 0}, {"flush_interval": 0}])
def test_rejects_bad_configuration(transport, kw):
    with pytest.raises(ValueError):
        EventCollector(transport, **kw)
