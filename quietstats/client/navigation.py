"""
SPA navigation detection.

Decorates ``history.push_state``/``replace_state`` (the original still runs
first and its result is returned) and listens for ``popstate`` and
``hashchange``. Every real navigation is reported; debouncing is the caller's
business. ``replace_state`` is reported to ``on_navigation`` but only becomes
a pageview according to the configured ReplacePolicy.
"""
from __future__ import annotations

import functools
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

import structlog

from .host import Host, read

log = structlog.get_logger("quietstats.client")

_MISSING = object()


class NavigationTrigger(str, Enum):
    PUSH = "push"
    REPLACE = "replace"
    POP = "pop"
    HASH = "hash"


class ReplacePolicy(str, Enum):
    IGNORE = "ignore"            # replace_state never counts as a pageview
    ALWAYS = "always"
    URL_CHANGE = "url_change"    # only when the URL actually changed


@dataclass(frozen=True)
class Navigation:
    trigger: NavigationTrigger
    url: str
    previous_url: Optional[str]


class NavigationObserver:
    def __init__(
        self,
        host: Host,
        on_pageview: Callable[[Navigation], None],
        *,
        replace_policy: ReplacePolicy = ReplacePolicy.IGNORE,
        hash_routing: bool = True,
        on_navigation: Optional[Callable[[Navigation], None]] = None,
        debug: bool = False,
    ):
        self.host = host
        self.on_pageview = on_pageview
        self.on_navigation = on_navigation
        self.replace_policy = ReplacePolicy(replace_policy)
        self.hash_routing = hash_routing
        self.debug = debug
        self.counts: Counter = Counter()
        self.active = False
        self._saved: Dict[str, Any] = {}
        self._wrappers: Dict[str, Callable] = {}
        self._url = self._location()
        self._last_pop_url: Optional[str] = None

    def _location(self) -> Optional[str]:
        return read(read(self.host, "window"), "location")

    def start(self) -> "NavigationObserver":
        if self.active:
            return self
        self.active = True
        self._url = self._location()
        history = read(self.host, "history")
        if history is not None:
            self._wrap(history, "push_state", NavigationTrigger.PUSH)
            self._wrap(history, "replace_state", NavigationTrigger.REPLACE)
        window = read(self.host, "window")
        if window is not None:
            try:
                window.add_event_listener("popstate", self._on_popstate)
                window.add_event_listener("hashchange", self._on_hashchange)
            except Exception as e:
                self._debug("listeners unavailable", error=repr(e))
        return self

    def stop(self) -> None:
        """Stop emitting. Events already handed on are not touched."""
        if not self.active:
            return
        self.active = False
        history = read(self.host, "history")
        for name, wrapper in self._wrappers.items():
            try:
                # only unwind our own layer; someone may have wrapped on top of it
                if history.__dict__.get(name) is wrapper:
                    if self._saved[name] is _MISSING:
                        delattr(history, name)
                    else:
                        setattr(history, name, self._saved[name])
            except Exception as e:
                self._debug("history restore failed", method=name, error=repr(e))
        self._wrappers.clear()
        self._saved.clear()
        window = read(self.host, "window")
        if window is not None:
            try:
                window.remove_event_listener("popstate", self._on_popstate)
                window.remove_event_listener("hashchange", self._on_hashchange)
            except Exception as e:
                self._debug("listener removal failed", error=repr(e))

    def _wrap(self, history: Any, name: str, trigger: NavigationTrigger) -> None:
        original = getattr(history, name, None)
        if original is None:
            return

        @functools.wraps(original)
        def wrapper(*args, **kwargs):
            result = original(*args, **kwargs)
            if self.active:
                self._handle(trigger, self._location())
            return result

        try:
            self._saved[name] = getattr(history, "__dict__", {}).get(name, _MISSING)
            setattr(history, name, wrapper)
            self._wrappers[name] = wrapper
        except Exception as e:
            self._saved.pop(name, None)
            self._debug("history not patchable", method=name, error=repr(e))

    def _on_popstate(self, event: Any) -> None:
        if not self.active:
            return
        url = self._location()
        self._last_pop_url = url
        self._handle(NavigationTrigger.POP, url)

    def _on_hashchange(self, event: Any) -> None:
        if not self.active:
            return
        new_url = read(event, "new_url") or self._location()
        if new_url is not None and new_url == self._last_pop_url:
            # the popstate for this same traversal was already reported
            self._last_pop_url = None
            return
        self._handle(NavigationTrigger.HASH, new_url, previous=read(event, "old_url"))

    def _handle(self, trigger: NavigationTrigger, url: Optional[str], previous: Optional[str] = None) -> None:
        previous = previous if previous is not None else self._url
        if url is None:
            return
        nav = Navigation(trigger, url, previous)
        self.counts[trigger] += 1
        if trigger is not NavigationTrigger.POP:
            self._last_pop_url = None
        self._url = url
        self._emit(self.on_navigation, nav)
        if self._is_pageview(nav):
            self._emit(self.on_pageview, nav)

    def _is_pageview(self, nav: Navigation) -> bool:
        if nav.trigger is NavigationTrigger.REPLACE:
            if self.replace_policy is ReplacePolicy.ALWAYS:
                return True
            if self.replace_policy is ReplacePolicy.URL_CHANGE:
                return nav.url != nav.previous_url
            return False
        if nav.trigger is NavigationTrigger.HASH:
            return self.hash_routing
        return True

    def _emit(self, callback: Optional[Callable[[Navigation], None]], nav: Navigation) -> None:
        if callback is None:
            return
        try:
            callback(nav)
        except Exception as e:
            # host page code must never see a tracking failure
            self._debug("navigation callback failed", trigger=nav.trigger.value, error=repr(e))

    def _debug(self, msg: str, **kw) -> None:
        if self.debug:
            log.debug(msg, **kw)
