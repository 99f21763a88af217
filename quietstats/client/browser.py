from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .host import Host, Listener

DEFAULT_UA = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0 Safari/537.36"


@dataclass
class DomEvent:
    type: str
    state: Any = None
    old_url: Optional[str] = None
    new_url: Optional[str] = None


@dataclass
class SimpleNavigator:
    user_agent: Optional[str] = DEFAULT_UA
    language: Optional[str] = "en-US"
    send_beacon: Optional[Callable[[str, bytes], bool]] = None


@dataclass
class SimpleScreen:
    width: Optional[int] = 1920
    height: Optional[int] = 1080
    color_depth: Optional[int] = 24


@dataclass
class SimulatedWindow:
    location: str
    referrer: Optional[str] = None
    timezone_offset: Optional[int] = 0
    visibility_state: str = "visible"
    _listeners: Dict[str, List[Listener]] = field(default_factory=lambda: defaultdict(list), repr=False)

    def add_event_listener(self, event: str, listener: Listener) -> None:
        self._listeners[event].append(listener)

    def remove_event_listener(self, event: str, listener: Listener) -> None:
        if listener in self._listeners[event]:
            self._listeners[event].remove(listener)

    def dispatch(self, ev: DomEvent) -> None:
        for listener in list(self._listeners[ev.type]):
            listener(ev)

    def listener_count(self, event: str) -> int:
        return len(self._listeners[event])


class SimulatedHistory:
    def __init__(self, window: SimulatedWindow):
        self._window = window
        self.entries: List[Tuple[Any, str]] = [(None, window.location)]
        self.index = 0

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def state(self) -> Any:
        return self.entries[self.index][0]

    def push_state(self, state: Any, title: str = "", url: Optional[str] = None) -> None:
        target = _resolve(self._window.location, url)
        del self.entries[self.index + 1:]
        self.entries.append((state, target))
        self.index += 1
        self._window.location = target

    def replace_state(self, state: Any, title: str = "", url: Optional[str] = None) -> None:
        target = _resolve(self._window.location, url)
        self.entries[self.index] = (state, target)
        self._window.location = target

    def go(self, delta: int) -> None:
        i = self.index + delta
        if not 0 <= i < len(self.entries):
            return
        old = self._window.location
        self.index = i
        state, url = self.entries[i]
        self._window.location = url
        self._window.dispatch(DomEvent("popstate", state=state, old_url=old, new_url=url))
        # browsers report a traversal between fragments of one document twice
        if old != url and old.split("#", 1)[0] == url.split("#", 1)[0]:
            self._window.dispatch(DomEvent("hashchange", old_url=old, new_url=url))


def _resolve(current: str, url: Optional[str]) -> str:
    if url is None:
        return current
    if url.startswith("#"):
        return current.split("#", 1)[0] + url
    if url.startswith("/"):
        scheme, _, rest = current.partition("://")
        host = rest.split("/", 1)[0]
        return f"{scheme}://{host}{url}"
    return url


class SimulatedBrowser:
    """
    In-memory stand-in for a browser tab: a location, a history stack, event
    listeners, optional beacon support. Drives the client SDK in tests and in
    the synthetic traffic personas.
    """

    def __init__(
        self,
        url: str = "https://example.com/",
        *,
        referrer: Optional[str] = None,
        user_agent: Optional[str] = DEFAULT_UA,
        language: Optional[str] = "en-US",
        screen: Optional[Tuple[int, int, int]] = (1920, 1080, 24),
        timezone_offset: Optional[int] = 0,
        beacon: bool = True,
        beacon_accepts: bool = True,
    ):
        self.window = SimulatedWindow(location=url, referrer=referrer, timezone_offset=timezone_offset)
        self.history = SimulatedHistory(self.window)
        self.screen = SimpleScreen(*screen) if screen else None
        self.navigator = SimpleNavigator(user_agent=user_agent, language=language)
        self.beacons: List[Tuple[str, bytes]] = []
        self.beacon_accepts = beacon_accepts
        if beacon:
            self.navigator.send_beacon = self._send_beacon

    @property
    def host(self) -> Host:
        return Host(navigator=self.navigator, screen=self.screen, history=self.history, window=self.window)

    @property
    def location(self) -> str:
        return self.window.location

    def _send_beacon(self, url: str, data: bytes) -> bool:
        if not self.beacon_accepts:
            return False
        self.beacons.append((url, data))
        return True

    # user actions

    def back(self) -> None:
        self.history.go(-1)

    def forward(self) -> None:
        self.history.go(1)

    def set_hash(self, fragment: str) -> None:
        old = self.window.location
        new = old.split("#", 1)[0] + "#" + fragment.lstrip("#")
        if new == old:
            return
        del self.history.entries[self.history.index + 1:]
        self.history.entries.append((None, new))
        self.history.index += 1
        self.window.location = new
        self.window.dispatch(DomEvent("hashchange", old_url=old, new_url=new))

    def hide(self) -> None:
        self.window.visibility_state = "hidden"
        self.window.dispatch(DomEvent("visibilitychange"))
        self.window.dispatch(DomEvent("pagehide"))
