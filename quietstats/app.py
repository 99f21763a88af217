from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import redis
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .clock import Clock, SystemClock
from .config import Settings, load_settings
from .errors import AnonymizationError, PayloadError, PayloadTooLarge, RateLimited, SinkError
from .ingestion import IngestionService
from .logconfig import configure_logging
from .privacy.anonymizer import Anonymizer
from .privacy.ratelimit import MemoryCounterStore, RateLimiter, RedisCounterStore
from .privacy.salt import RedisSaltProvider, RotatingSaltProvider, SaltProvider
from .sinks import EventSink, RedisQueueSink
from .urls import MAX_URL_LENGTH, SENSITIVE_PARAMS

log = structlog.get_logger()

ACCEPTED_CONTENT_TYPES = ("application/json", "text/plain")
SALT_CHECK_SECONDS = 60


def build_service(
    settings: Settings,
    r: redis.Redis,
    *,
    salts: Optional[SaltProvider] = None,
    sink: Optional[EventSink] = None,
    clock: Optional[Clock] = None,
) -> IngestionService:
    clock = clock or SystemClock()
    if salts is None:
        salts = RedisSaltProvider(r, clock) if settings.salt_backend == "redis" else RotatingSaltProvider(clock)
    store = RedisCounterStore(r) if settings.limit_backend == "redis" else MemoryCounterStore()
    return IngestionService(
        Anonymizer(salts, trusted_proxy_hops=settings.trusted_hops),
        RateLimiter(store, limit=settings.rate_limit, window=settings.rate_window, clock=clock),
        sink if sink is not None else RedisQueueSink(r, settings.queue),
        max_batch=settings.max_batch,
        max_body_bytes=settings.max_body_bytes,
        known_sites=settings.known_sites,
        clock=clock,
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    redis_client: Optional[redis.Redis] = None,
    service: Optional[IngestionService] = None,
) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level, settings.log_json)
    r = redis_client or redis.Redis.from_url(settings.redis_url, decode_responses=False)
    service = service or build_service(settings, r)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # touch the salt periodically so an expired one is dropped at the
        # day boundary even when no traffic arrives
        async def keep_salt_fresh():
            while True:
                try:
                    await run_in_threadpool(service.anonymizer.current_salt)
                except (AnonymizationError, redis.RedisError) as e:
                    log.warning("salt refresh failed", error=type(e).__name__)
                await asyncio.sleep(SALT_CHECK_SECONDS)

        task = asyncio.create_task(keep_salt_fresh())
        try:
            yield
        finally:
            task.cancel()

    app = FastAPI(title="quietstats ingest", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.service = service

    # the snippet runs on third-party sites
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        redis_ok = False
        try:
            r.ping()
            redis_ok = True
        except redis.RedisError:
            pass
        return {"ok": True, "service": "quietstats-ingest", "redis": redis_ok}

    async def ingest(request: Request):
        """
        Accept a single event object, a list of events, or the batch envelope.
        Valid items are stored even when others in the batch are rejected.
        """
        ctype = request.headers.get("content-type", "").split(";")[0].strip().lower()
        if ctype and ctype not in ACCEPTED_CONTENT_TYPES:
            return JSONResponse(status_code=415, content={"error": "unsupported_media_type"})

        body = await request.body()
        peer = request.client.host if request.client else None
        try:
            result = await run_in_threadpool(service.ingest, body, request.headers, peer)
        except PayloadTooLarge as e:
            return JSONResponse(status_code=413, content={"error": e.code})
        except PayloadError as e:
            return JSONResponse(status_code=400, content={"error": e.code})
        except RateLimited as e:
            headers = e.result.headers()
            headers["Retry-After"] = str(e.result.retry_after)
            return JSONResponse(
                status_code=429,
                content={"error": "rate_limited", "retry_after": e.result.retry_after},
                headers=headers,
            )
        except SinkError:
            return JSONResponse(status_code=500, content={"error": "storage_unavailable"})
        except AnonymizationError:
            return JSONResponse(status_code=500, content={"error": "anonymization_unavailable"})

        status = 200 if result.accepted else 400
        return JSONResponse(status_code=status, content=result.to_body(), headers=result.rate.headers())

    app.add_api_route("/ingest", ingest, methods=["POST"])
    app.add_api_route("/api/track", ingest, methods=["POST"])

    @app.get("/privacy/policy")
    def privacy_policy():
        try:
            salt = service.anonymizer.current_salt()
        except AnonymizationError:
            return JSONResponse(status_code=500, content={"error": "anonymization_unavailable"})
        return {
            "visitor_hash": "sha256(ip|user_agent|daily_salt)",
            "salt_valid_until": salt.valid_until.isoformat(),
            "rate_limit": {"limit": service.limiter.limit, "window_seconds": service.limiter.window},
            "max_url_length": MAX_URL_LENGTH,
            "stripped_query_params": sorted(SENSITIVE_PARAMS),
            "max_batch": service.max_batch,
        }

    return app


app = create_app()
