"""
Ingestion pipeline: body -> items -> validation -> visitor hash -> rate limit
-> anonymized records -> sink.

Validation is pure and runs before anything touches the caller's address.
A bad item only rejects itself; a sink failure rejects the whole request.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple, Union

import structlog
from pydantic import ValidationError

from .clock import Clock, SystemClock
from .enrich import DeviceContext, classify_referrer, parse_user_agent
from .errors import PayloadError, PayloadTooLarge, RateLimited
from .events import AnonymizedEvent, Event
from .privacy.anonymizer import Anonymizer
from .privacy.pii import find_pii
from .privacy.ratelimit import RateLimiter, RateLimitResult
from .sinks import EventSink
from .urls import url_host, url_path

log = structlog.get_logger()

MAX_BATCH = 50
MAX_BODY_BYTES = 64_000


@dataclass(frozen=True)
class ItemRejection:
    index: int
    errors: List[str]


@dataclass
class ValidationReport:
    valid: List[Tuple[int, Event]] = field(default_factory=list)
    rejected: List[ItemRejection] = field(default_factory=list)


@dataclass
class IngestResult:
    accepted: int
    rejected: List[ItemRejection]
    rate: RateLimitResult

    @property
    def status(self) -> str:
        if not self.rejected:
            return "ok"
        return "partial" if self.accepted else "rejected"

    def to_body(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "accepted": self.accepted,
            "rejected": [{"index": r.index, "errors": r.errors} for r in self.rejected],
        }


def parse_body(raw: bytes, max_bytes: int = MAX_BODY_BYTES) -> List[Any]:
    """Accept one event object, an array of them, or the {"batch", "siteId", "events"} envelope."""
    if len(raw) > max_bytes:
        raise PayloadTooLarge("payload_too_large")
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError, RecursionError):
        raise PayloadError("invalid_json")

    if isinstance(data, dict) and isinstance(data.get("events"), list):
        site_id = data.get("siteId")
        items = [
            {**it, "siteId": site_id} if isinstance(it, dict) and site_id and not (it.get("siteId") or it.get("site_id")) else it
            for it in data["events"]
        ]
    elif isinstance(data, dict):
        items = [data]
    elif isinstance(data, list):
        items = data
    else:
        raise PayloadError("invalid_payload")

    if not items:
        raise PayloadError("empty_batch")
    return items


def _describe(err: Mapping[str, Any]) -> str:
    loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
    return f"{loc}: {err['msg']}" if loc else err["msg"]


def validate_item(item: Any, known_sites: FrozenSet[str] = frozenset()) -> Union[Event, List[str]]:
    if not isinstance(item, dict):
        return ["item must be an object"]
    try:
        event = Event.model_validate(item)
    except ValidationError as e:
        return [_describe(err) for err in e.errors()]
    if known_sites and event.site_id not in known_sites:
        return ["siteId: unknown_site"]
    return event


def validate_batch(items: List[Any], known_sites: FrozenSet[str] = frozenset()) -> ValidationReport:
    report = ValidationReport()
    for i, item in enumerate(items):
        outcome = validate_item(item, known_sites)
        if isinstance(outcome, Event):
            report.valid.append((i, outcome))
        else:
            report.rejected.append(ItemRejection(i, outcome))
    return report


def anonymize_event(
    event: Event,
    visitor_hash: str,
    context: DeviceContext,
    received_at,
    page_hint: Optional[str] = None,
) -> AnonymizedEvent:
    page_url = event.url if url_host(event.url) else page_hint
    source = classify_referrer(event.referrer, page_url)
    return AnonymizedEvent(
        site_id=event.site_id,
        kind=event.kind,
        url=event.url,
        path=url_path(event.url),
        referrer=event.referrer,
        traffic_type=source.type,
        traffic_source=source.source,
        screen_width=event.screen_width,
        screen_height=event.screen_height,
        language=event.language,
        page_token=event.visitor_token,
        visitor_hash=visitor_hash,
        device=context.device,
        browser=context.browser,
        os=context.os,
        name=event.name,
        category=event.category,
        value=event.value,
        received_at=received_at,
    )


class IngestionService:
    def __init__(
        self,
        anonymizer: Anonymizer,
        limiter: RateLimiter,
        sink: EventSink,
        *,
        max_batch: int = MAX_BATCH,
        max_body_bytes: int = MAX_BODY_BYTES,
        known_sites: FrozenSet[str] = frozenset(),
        clock: Optional[Clock] = None,
    ):
        self.anonymizer = anonymizer
        self.limiter = limiter
        self.sink = sink
        self.max_batch = max_batch
        self.max_body_bytes = max_body_bytes
        self.known_sites = frozenset(known_sites)
        self._clock = clock or SystemClock()

    def ingest(self, body: bytes, headers: Mapping[str, str], peer: Optional[str]) -> IngestResult:
        items = parse_body(body, self.max_body_bytes)
        if len(items) > self.max_batch:
            raise PayloadTooLarge("batch_too_large")
        report = validate_batch(items, self.known_sites)

        visitor_hash = self.anonymizer.hash_request(headers, peer)
        rate = self.limiter.hit(visitor_hash)
        if not rate.allowed:
            log.info("ingest throttled", items=len(items), retry_after=rate.retry_after)
            raise RateLimited(rate)

        # reduced to coarse names here; the header value itself goes no further
        context = parse_user_agent(headers.get("user-agent"))
        page_hint = headers.get("referer")

        records: List[AnonymizedEvent] = []
        rejected = list(report.rejected)
        for index, event in report.valid:
            free_text = [event.url, event.referrer, event.name, event.category]
            if isinstance(event.value, str):
                free_text.append(event.value)
            pii = find_pii(free_text)
            if pii:
                rejected.append(ItemRejection(index, [f"pii_detected: {pii}"]))
                continue
            records.append(anonymize_event(event, visitor_hash, context, self._clock.now(), page_hint))
        rejected.sort(key=lambda r: r.index)

        if records:
            self.sink.write(records)

        log.info(
            "ingest",
            sites=sorted({r.site_id for r in records}),
            accepted=len(records),
            rejected=len(rejected),
        )
        return IngestResult(accepted=len(records), rejected=rejected, rate=rate)
