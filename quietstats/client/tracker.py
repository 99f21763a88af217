"""
The tracking snippet, as an object.

``Tracker.start`` does what the embedded script does on load: compute the
visitor token once, record the initial pageview, watch SPA navigation for the
rest of the page's life, and flush when the page is hidden or unloaded.
"""
from __future__ import annotations

import re
from typing import Any, Mapping, Optional, Union

import structlog
from pydantic import ValidationError

from ..events import LANGUAGE_PATTERN, Event, EventKind
from .collector import BATCH_SIZE, FLUSH_INTERVAL, EventCollector
from .fingerprint import FingerprintComponents, FingerprintGenerator
from .host import Host, read
from .navigation import Navigation, NavigationObserver, ReplacePolicy
from .scheduler import Scheduler
from .transport import DEFAULT_ENDPOINT, Transport, select_transport

log = structlog.get_logger("quietstats.client")


def _language(nav) -> Optional[str]:
    # an unusable language tag is dropped, the event still counts
    v = read(nav, "language")
    if not isinstance(v, str):
        return None
    v = v.strip().replace("_", "-")
    if len(v) > 35 or not re.match(LANGUAGE_PATTERN, v):
        return None
    return v


def _flag(attrs: Mapping[str, Any], name: str, default: bool) -> bool:
    # data-* attributes are strings; only an explicit "true"/"false" overrides
    v = str(attrs.get(name) or "").strip().lower()
    if v in ("true", "false"):
        return v == "true"
    return default


class Tracker:
    def __init__(
        self,
        site_id: str,
        host: Host,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        transport: Optional[Transport] = None,
        scheduler: Optional[Scheduler] = None,
        batch_size: int = BATCH_SIZE,
        flush_interval: float = FLUSH_INTERVAL,
        auto_track: bool = True,
        spa: bool = True,
        replace_policy: ReplacePolicy = ReplacePolicy.IGNORE,
        hash_routing: bool = True,
        debug: bool = False,
    ):
        self.site_id = site_id
        self.host = host
        self.debug = debug
        self.auto_track = auto_track
        self.spa = spa
        self._owns_transport = transport is None
        self.transport = transport or select_transport(host, endpoint, debug=debug)
        self.collector = EventCollector(
            self.transport, batch_size=batch_size, flush_interval=flush_interval, scheduler=scheduler
        )
        self.observer = NavigationObserver(
            host,
            self._on_navigation,
            replace_policy=replace_policy,
            hash_routing=hash_routing,
            debug=debug,
        )
        self.visitor_token: Optional[str] = None
        self.started = False

    @classmethod
    def from_script_attributes(cls, attrs: Mapping[str, Any], host: Host, **kwargs) -> Optional["Tracker"]:
        """Auto-init from ``data-*`` attributes; no ``data-site-id`` means no tracker."""
        site_id = (attrs.get("data-site-id") or "").strip()
        if not site_id:
            return None
        if attrs.get("data-endpoint"):
            kwargs.setdefault("endpoint", attrs["data-endpoint"])
        tracker = cls(
            site_id,
            host,
            auto_track=_flag(attrs, "data-auto-track", True),
            spa=_flag(attrs, "data-spa", True),
            debug=_flag(attrs, "data-debug", False),
            **kwargs,
        )
        return tracker.start()

    def start(self) -> "Tracker":
        if self.started:
            return self
        self.started = True
        try:
            self.visitor_token = FingerprintGenerator().generate(FingerprintComponents.from_host(self.host))
            if self.auto_track:
                self.track_pageview()
            if self.spa:
                self.observer.start()
            window = read(self.host, "window")
            if window is not None:
                window.add_event_listener("pagehide", self._on_pagehide)
                window.add_event_listener("visibilitychange", self._on_visibility)
        except Exception as e:
            self._debug("start failed", error=repr(e))
        self._debug("initialized", site_id=self.site_id)
        return self

    def track_pageview(self, url: Optional[str] = None, referrer: Optional[str] = None) -> None:
        window = read(self.host, "window")
        self._add(
            kind=EventKind.PAGEVIEW,
            url=url or read(window, "location"),
            referrer=referrer if referrer is not None else read(window, "referrer"),
        )

    def track(self, name: str, *, category: Optional[str] = None, value: Optional[Union[float, str]] = None) -> None:
        window = read(self.host, "window")
        self._add(kind=EventKind.CUSTOM, url=read(window, "location"), name=name, category=category, value=value)

    def flush(self) -> None:
        try:
            self.collector.flush()
        except Exception as e:
            self._debug("flush failed", error=repr(e))

    def shutdown(self) -> None:
        """Stop observing, hand the remaining queue to the transport, then clear."""
        self.observer.stop()
        window = read(self.host, "window")
        if window is not None:
            try:
                window.remove_event_listener("pagehide", self._on_pagehide)
                window.remove_event_listener("visibilitychange", self._on_visibility)
            except Exception as e:
                self._debug("listener removal failed", error=repr(e))
        while self.collector.queue_length():
            self.flush()
        self.collector.clear()
        if self._owns_transport:
            self._close_transport()

    def _close_transport(self) -> None:
        close = getattr(self.transport, "close", None)
        if close is None:
            return
        try:
            close()
        except Exception as e:
            self._debug("transport close failed", error=repr(e))

    def _add(self, **fields) -> None:
        screen = read(self.host, "screen")
        nav = read(self.host, "navigator")
        width, height = read(screen, "width"), read(screen, "height")
        try:
            event = Event(
                site_id=self.site_id,
                screen_width=width if isinstance(width, int) and width > 0 else None,
                screen_height=height if isinstance(height, int) and height > 0 else None,
                language=_language(nav),
                visitor_token=self.visitor_token,
                **fields,
            )
        except ValidationError as e:
            self._debug("event dropped", kind=str(fields.get("kind")), errors=e.error_count())
            return
        try:
            self.collector.add(event)
        except Exception as e:
            self._debug("enqueue failed", error=repr(e))

    def _on_navigation(self, nav: Navigation) -> None:
        self.track_pageview(url=nav.url, referrer=nav.previous_url)

    def _on_pagehide(self, event: Any) -> None:
        self.flush()

    def _on_visibility(self, event: Any) -> None:
        if read(read(self.host, "window"), "visibility_state") == "hidden":
            self.flush()

    def _debug(self, msg: str, **kw) -> None:
        if self.debug:
            log.debug(msg, **kw)
