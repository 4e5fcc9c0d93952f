"""Click beacon and analytics read endpoints."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request
from starlette.responses import Response

from config.settings import settings
from tradetrends.api.deps import Clock, client_ip, get_clock, get_rate_limiter, get_store
from tradetrends.models.click import ClickEvent, hash_ip
from tradetrends.models.deal import Network
from tradetrends.services import analytics
from tradetrends.services.rate_limit import RateLimiter
from tradetrends.storage import KeyValueStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["analytics"])

DEFAULT_DAYS = 7
MIN_DAYS, MAX_DAYS = 1, 90
_NETWORKS = {n.value for n in Network}


def parse_days(raw: Optional[str]) -> int:
    """Unparseable -> 7, otherwise clamped to [1, 90]."""
    try:
        days = int(str(raw).strip())
    except (TypeError, ValueError):
        return DEFAULT_DAYS
    return max(MIN_DAYS, min(MAX_DAYS, days))


@router.get("/click", status_code=204)
async def click_beacon(
    request: Request,
    network: Optional[str] = None,
    id: Optional[str] = None,
    store: KeyValueStore = Depends(get_store),
    limiter: RateLimiter = Depends(get_rate_limiter),
    clock: Clock = Depends(get_clock),
):
    """Background click tracking. Always 204, whatever happens."""
    headers = {"Access-Control-Allow-Origin": "*", "Cache-Control": "no-store"}
    deal_id = (id or "").strip()[:200]
    if not deal_id or network not in _NETWORKS:
        return Response(status_code=204, headers=headers)
    try:
        now_ms = clock()
        ip_hash = hash_ip(client_ip(request), settings.TT_SALT)
        decision = await limiter.check(ip_hash, now_ms)
        if decision.allowed:
            await analytics.record_click(store, ClickEvent.from_ms(
                now_ms,
                network=network,
                deal_id=deal_id,
                ip_hash=ip_hash,
                user_agent=request.headers.get("user-agent") or "unknown",
                referrer=request.headers.get("referer") or "direct",
            ))
        else:
            logger.info("Click beacon over budget for %s, not recorded", ip_hash)
    except Exception:
        logger.exception("Click beacon failed")
    return Response(status_code=204, headers=headers)


@router.get("/analytics")
async def analytics_window(
    days: Optional[str] = None,
    store: KeyValueStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """Click stats over the trailing ``days`` days of the raw click log."""
    window = parse_days(days)
    now = datetime.fromtimestamp(clock() / 1000, tz=timezone.utc)
    return await analytics.get_click_window(store, window, now=now)


@router.get("/analytics/summary")
async def analytics_summary(store: KeyValueStore = Depends(get_store)):
    """All-time aggregates (summary, daily buckets, top deals)."""
    return await analytics.get_analytics_summary(store)
