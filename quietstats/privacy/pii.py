import re
from typing import Iterable, Optional

PII_PATTERNS = [
    ("ipv4", re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b")),
    ("ipv6", re.compile(r"\b(?:[A-Fa-f0-9]{1,4}:){7}[A-Fa-f0-9]{1,4}\b")),  # full form only
    ("email", re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")),
    ("phone", re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")),
]


def find_pii(values: Iterable[Optional[object]]) -> Optional[str]:
    """Name of the first PII pattern found in any of ``values``, else None."""
    for v in values:
        if v is None:
            continue
        s = str(v)
        for name, rx in PII_PATTERNS:
            if rx.search(s):
                return name
    return None
