"""
Categorical enrichment done at ingestion time, before the raw header values
are thrown away. Only coarse names are kept (no versions, no build strings)
so the output cannot act as a fingerprint.
"""
from __future__ import annotations

import re
from typing import NamedTuple, Optional

from .urls import url_host


class DeviceContext(NamedTuple):
    device: str
    browser: str
    os: str


class TrafficSource(NamedTuple):
    type: str
    source: Optional[str]


_TABLET = re.compile(r"tablet|ipad|playbook|silk", re.I)
_MOBILE = re.compile(r"mobile|iphone|ipod|android|blackberry|opera mini|iemobile", re.I)

# order matters: Edge and Opera also announce Chrome, Chrome announces Safari
_BROWSERS = [
    ("firefox", re.compile(r"firefox|fxios", re.I)),
    ("edge", re.compile(r"edg", re.I)),
    ("opera", re.compile(r"opera|opr/", re.I)),
    ("chrome", re.compile(r"chrome|crios", re.I)),
    ("safari", re.compile(r"safari", re.I)),
    ("ie", re.compile(r"msie|trident", re.I)),
]

_OSES = [
    ("windows", re.compile(r"windows", re.I)),
    ("ios", re.compile(r"iphone|ipad|ipod", re.I)),
    ("macos", re.compile(r"macintosh|mac os x", re.I)),
    ("android", re.compile(r"android", re.I)),
    ("linux", re.compile(r"linux", re.I)),
]

SEARCH_ENGINES = {
    "google": re.compile(r"google\.", re.I),
    "bing": re.compile(r"bing\.", re.I),
    "yahoo": re.compile(r"yahoo\.", re.I),
    "duckduckgo": re.compile(r"duckduckgo\.", re.I),
    "baidu": re.compile(r"baidu\.", re.I),
    "yandex": re.compile(r"yandex\.", re.I),
}

SOCIAL_NETWORKS = {
    "facebook": re.compile(r"(^|\.)(facebook|fb)\.", re.I),
    "twitter": re.compile(r"(^|\.)(twitter\.|t\.co$)", re.I),
    "x": re.compile(r"(^|\.)x\.com$", re.I),
    "linkedin": re.compile(r"linkedin\.", re.I),
    "instagram": re.compile(r"instagram\.", re.I),
    "pinterest": re.compile(r"pinterest\.", re.I),
    "reddit": re.compile(r"reddit\.", re.I),
    "youtube": re.compile(r"youtube\.", re.I),
    "tiktok": re.compile(r"tiktok\.", re.I),
}


def parse_user_agent(user_agent: Optional[str]) -> DeviceContext:
    ua = user_agent or ""
    if _TABLET.search(ua):
        device = "tablet"
    elif _MOBILE.search(ua):
        device = "mobile"
    else:
        device = "desktop"
    browser = next((name for name, rx in _BROWSERS if rx.search(ua)), "other")
    os_name = next((name for name, rx in _OSES if rx.search(ua)), "other")
    return DeviceContext(device, browser, os_name)


def classify_referrer(referrer: Optional[str], page_url: Optional[str] = None) -> TrafficSource:
    if not referrer:
        return TrafficSource("direct", None)
    host = url_host(referrer)
    if host is None:
        # relative referrer: same site by construction
        return TrafficSource("internal", None) if referrer.startswith("/") else TrafficSource("referral", None)

    for engine, rx in SEARCH_ENGINES.items():
        if rx.search(host):
            return TrafficSource("organic", engine)
    for network, rx in SOCIAL_NETWORKS.items():
        if rx.search(host):
            return TrafficSource("social", network)
    if host == url_host(page_url):
        return TrafficSource("internal", host)
    return TrafficSource("referral", host)
