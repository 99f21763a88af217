from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from quietstats.app import build_service, create_app
from quietstats.client.browser import SimulatedBrowser
from quietstats.client.scheduler import ManualScheduler
from quietstats.config import Settings
from quietstats.events import Event
from quietstats.privacy.salt import RotatingSaltProvider
from quietstats.sinks import MemorySink


class FakeClock:
    def __init__(self, start=datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)):
        self.current = start

    def now(self):
        return self.current

    def advance(self, **kw):
        self.current += timedelta(**kw)


class RecordingTransport:
    def __init__(self):
        self.batches = []

    def send(self, batch):
        self.batches.append(list(batch))

    @property
    def events(self):
        return [e for b in self.batches for e in b]


def make_event(url="https://example.com/", **kw):
    return Event(kind=kw.pop("kind", "pageview"), site_id=kw.pop("site_id", "site-1"), url=url, **kw)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def browser():
    return SimulatedBrowser("https://example.com/", referrer="https://www.google.com/")


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def make_client(clock, sink):
    def factory(settings=None, sink=sink, redis_client=None):
        settings = settings or Settings()
        r = redis_client or MagicMock()
        service = build_service(settings, r, salts=RotatingSaltProvider(clock), sink=sink, clock=clock)
        return TestClient(create_app(settings, redis_client=r, service=service))
    return factory


@pytest.fixture
def client(make_client):
    return make_client()
