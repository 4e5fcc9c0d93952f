"""FastAPI dependencies. Tests swap any of these via ``app.dependency_overrides``."""
from __future__ import annotations

import time
from typing import AsyncIterator, Callable

import httpx
from fastapi import Depends, Request

from config.settings import settings
from tradetrends.services.catalog import DealCatalog
from tradetrends.services.flags import FlagsReader
from tradetrends.services.go import GoEndpoint
from tradetrends.services.incidents import IncidentSink
from tradetrends.services.loop_detector import LoopDetector
from tradetrends.services.rate_limit import RateLimiter
from tradetrends.services.redirect import RedirectResolver
from tradetrends.storage import KeyValueStore, create_store

Clock = Callable[[], int]

_store: KeyValueStore | None = None


def get_store() -> KeyValueStore:
    """Process-wide store, built on first use from the environment."""
    global _store
    if _store is None:
        _store = create_store()
    return _store


def system_clock() -> int:
    return int(time.time() * 1000)


def get_clock() -> Clock:
    return system_clock


def get_catalog(store: KeyValueStore = Depends(get_store)) -> DealCatalog:
    return DealCatalog(store)


def get_incident_sink(store: KeyValueStore = Depends(get_store)) -> IncidentSink:
    return IncidentSink(store)


def get_flags_reader() -> FlagsReader:
    return FlagsReader()


def get_loop_detector() -> LoopDetector:
    return LoopDetector()


def get_rate_limiter(store: KeyValueStore = Depends(get_store)) -> RateLimiter:
    return RateLimiter(store)


def get_resolver(catalog: DealCatalog = Depends(get_catalog)) -> RedirectResolver:
    return RedirectResolver(catalog)


def get_go_endpoint(
    store: KeyValueStore = Depends(get_store),
    resolver: RedirectResolver = Depends(get_resolver),
    loop_detector: LoopDetector = Depends(get_loop_detector),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    incidents: IncidentSink = Depends(get_incident_sink),
    flags: FlagsReader = Depends(get_flags_reader),
) -> GoEndpoint:
    return GoEndpoint(store, resolver, loop_detector, rate_limiter, incidents, flags)


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=10) as client:
        yield client


def client_ip(request: Request) -> str:
    """Client IP as seen by the outermost trusted proxy.

    Each proxy appends the address it received the request from, so with N
    trusted hops the client is the N-th entry from the right. Anything to the
    left of that was sent by the client and can be forged.
    """
    hops = settings.TRUSTED_PROXY_HOPS
    forwarded = request.headers.get("x-forwarded-for")
    if hops > 0 and forwarded:
        entries = [e.strip() for e in forwarded.split(",") if e.strip()]
        if entries:
            return entries[-min(hops, len(entries))]
    return request.client.host if request.client else "unknown"
