"""
Capability interfaces for the environment the collector runs in.

Everything the client SDK needs from a browser-like host is reached through
these few objects, and every one of them may be missing. Code that reads a
capability must cope with ``None`` and with a getter that raises.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

Listener = Callable[[Any], None]


class Navigator(Protocol):
    user_agent: Optional[str]
    language: Optional[str]
    # fire-and-forget delivery that survives page unload; returns False if refused
    send_beacon: Optional[Callable[[str, bytes], bool]]


class Screen(Protocol):
    width: Optional[int]
    height: Optional[int]
    color_depth: Optional[int]


class History(Protocol):
    def push_state(self, state: Any, title: str = "", url: Optional[str] = None) -> None: ...

    def replace_state(self, state: Any, title: str = "", url: Optional[str] = None) -> None: ...


class Window(Protocol):
    location: str
    referrer: Optional[str]
    timezone_offset: Optional[int]     # minutes, as Date.getTimezoneOffset()
    visibility_state: str

    def add_event_listener(self, event: str, listener: Listener) -> None: ...

    def remove_event_listener(self, event: str, listener: Listener) -> None: ...


@dataclass
class Host:
    navigator: Optional[Navigator] = None
    screen: Optional[Screen] = None
    history: Optional[History] = None
    window: Optional[Window] = None


def read(obj: Any, attr: str, fallback: Any = None) -> Any:
    """getattr that also survives properties raising, and maps None to ``fallback``."""
    if obj is None:
        return fallback
    try:
        v = getattr(obj, attr)
    except Exception:
        return fallback
    return fallback if v is None else v
