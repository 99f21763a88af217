import json

import httpx

from conftest import RecordingTransport, make_event
from quietstats.client.browser import SimulatedBrowser
from quietstats.client.host import Host
from quietstats.client.transport import (
    BeaconTransport,
    FallbackTransport,
    RequestTransport,
    encode_batch,
    select_transport,
)

ENDPOINT = "https://collect.example/ingest"


def test_encode_batch_uses_wire_names_and_omits_absent():
    body = json.loads(encode_batch([make_event(screen_width=1280, visitor_token="abc")]))
    assert body == [{
        "kind": "pageview",
        "siteId": "site-1",
        "url": "https://example.com/",
        "screenWidth": 1280,
        "visitorToken": "abc",
    }]


class TestBeacon:
    def test_accepted(self):
        b = SimulatedBrowser()
        t = BeaconTransport(b.navigator.send_beacon, ENDPOINT)
        t.send([make_event()])
        assert len(b.beacons) == 1
        url, data = b.beacons[0]
        assert url == ENDPOINT
        assert json.loads(data)[0]["siteId"] == "site-1"

    def test_refused(self):
        b = SimulatedBrowser(beacon_accepts=False)
        assert BeaconTransport(b.navigator.send_beacon).offer([make_event()]) is False

    def test_raising_beacon_is_swallowed(self):
        def broken(url, data):
            raise OSError("blocked by extension")

        t = BeaconTransport(broken, debug=True)
        assert t.offer([make_event()]) is False
        t.send([make_event()])


class TestRequest:
    def test_posts_json(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"status": "ok"})

        t = RequestTransport(ENDPOINT, httpx.Client(transport=httpx.MockTransport(handler)))
        t.send([make_event("/a"), make_event("/b")])
        t.close()
        assert len(seen) == 1
        assert seen[0].method == "POST"
        assert str(seen[0].url) == ENDPOINT
        assert seen[0].headers["content-type"] == "application/json"
        assert [e["url"] for e in json.loads(seen[0].content)] == ["/a", "/b"]

    def test_network_error_is_swallowed(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        t = RequestTransport(ENDPOINT, httpx.Client(transport=httpx.MockTransport(handler)), debug=True)
        t.send([make_event()])
        t.close()

    def test_rate_limited_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, headers={"Retry-After": "30"})

        t = RequestTransport(ENDPOINT, httpx.Client(transport=httpx.MockTransport(handler)))
        t.send([make_event()])
        t.close()
        assert len(calls) == 1

    def test_send_after_close_is_dropped(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200)

        t = RequestTransport(ENDPOINT, httpx.Client(transport=httpx.MockTransport(handler)))
        t.close()
        t.send([make_event()])
        assert calls == []
        assert not t.opened

    def test_nothing_opened_until_first_send(self):
        t = RequestTransport(ENDPOINT)
        assert not t.opened
        t.close()
        assert t.closed
        assert not t.opened


class TestFallback:
    def test_refused_beacon_goes_to_request(self):
        b = SimulatedBrowser(beacon_accepts=False)
        fallback = RecordingTransport()
        FallbackTransport(BeaconTransport(b.navigator.send_beacon), fallback).send([make_event()])
        assert len(fallback.batches) == 1

    def test_accepted_beacon_skips_request(self):
        b = SimulatedBrowser()
        fallback = RecordingTransport()
        FallbackTransport(BeaconTransport(b.navigator.send_beacon), fallback).send([make_event()])
        assert fallback.batches == []
        assert len(b.beacons) == 1


class TestSelect:
    def test_beacon_capable_host(self):
        t = select_transport(SimulatedBrowser().host, ENDPOINT)
        assert isinstance(t, FallbackTransport)
        assert t.primary.endpoint == ENDPOINT
        t.fallback.close()

    def test_host_without_beacon(self):
        t = select_transport(SimulatedBrowser(beacon=False).host, ENDPOINT)
        assert isinstance(t, RequestTransport)
        t.close()

    def test_empty_host(self):
        t = select_transport(Host())
        assert isinstance(t, RequestTransport)
        t.close()
