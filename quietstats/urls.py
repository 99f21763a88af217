from __future__ import annotations

from typing import Optional
from urllib.parse import unquote_plus, urlsplit, urlunsplit

MAX_URL_LENGTH = 2000

# matched case-insensitively against query parameter names
SENSITIVE_PARAMS = frozenset({"token", "api_key", "password", "secret"})


def _is_sensitive(segment: str) -> bool:
    name = unquote_plus(segment.split("=", 1)[0])
    return name.strip().lower() in SENSITIVE_PARAMS


def _filter_query(query: str) -> str:
    # raw segments, so the parameters that stay keep their original encoding
    segments = query.split("&")
    kept = [s for s in segments if not _is_sensitive(s)]
    if len(kept) == len(segments):
        return query
    return "&".join(s for s in kept if s)


def strip_sensitive_params(url: str) -> str:
    """
    Drop sensitive query parameters and any user:password@ part.
    Hash routes (``#/path?a=b``) carry their own query and get the same
    treatment. Everything else is kept byte for byte.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    netloc = parts.netloc
    if "@" in netloc:
        netloc = netloc.rsplit("@", 1)[1]
    query = _filter_query(parts.query) if parts.query else parts.query
    fragment = parts.fragment
    if "?" in fragment:
        route, _, route_query = fragment.partition("?")
        filtered = _filter_query(route_query)
        if filtered != route_query:
            fragment = f"{route}?{filtered}" if filtered else route
    return urlunsplit((parts.scheme, netloc, parts.path, query, fragment))


def sanitize_url(url: Optional[str], max_length: int = MAX_URL_LENGTH) -> Optional[str]:
    if url is None:
        return None
    url = url.strip()
    if not url:
        return None
    return strip_sensitive_params(url)[:max_length]


def is_trackable_url(url: str) -> bool:
    # absolute http(s) URL with a host, or a site-relative path
    if url.startswith("/") and not url.startswith("//"):
        return True
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.hostname)


def url_path(url: str) -> str:
    try:
        return urlsplit(url).path or "/"
    except ValueError:
        return "/"


def url_host(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return None
    return host.lower() if host else None
