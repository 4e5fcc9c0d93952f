"""GET /go — tracked affiliate redirect."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from starlette.responses import Response

from config.settings import settings
from tradetrends.api.deps import Clock, client_ip, get_clock, get_go_endpoint, get_loop_detector
from tradetrends.middleware.metrics import metrics
from tradetrends.services.go import GoEndpoint, GoRequest, GoResponse
from tradetrends.services.loop_detector import LoopDetector

logger = logging.getLogger(__name__)
router = APIRouter(tags=["redirect"])


def to_http(result: GoResponse, loop_detector: LoopDetector) -> Response:
    response = Response(
        content=result.body,
        status_code=result.status,
        headers=result.headers,
        media_type=result.media_type,
    )
    if result.loop_token:
        response.set_cookie(
            settings.LOOP_COOKIE_NAME,
            result.loop_token,
            max_age=loop_detector.cookie_max_age,
            path="/go",
            httponly=True,
            samesite="lax",
            secure=settings.is_production,
        )
    elif result.clear_loop_token:
        response.delete_cookie(settings.LOOP_COOKIE_NAME, path="/go")
    return response


@router.get("/go")
async def go(
    request: Request,
    id: Optional[str] = None,
    network: Optional[str] = None,
    u: Optional[str] = None,
    endpoint: GoEndpoint = Depends(get_go_endpoint),
    loop_detector: LoopDetector = Depends(get_loop_detector),
    clock: Clock = Depends(get_clock),
):
    """Record the click and 302 to the deal's affiliate URL.

    This is the core monetization endpoint. Every failure mode ends in either
    an explanatory same-site page, a 429, or a redirect home; never a 500.
    """
    result = await endpoint.handle(GoRequest(
        deal_id=id,
        network=network,
        direct_url=u,
        now_ms=clock(),
        loop_token=request.cookies.get(settings.LOOP_COOKIE_NAME),
        client_ip=client_ip(request),
        user_agent=request.headers.get("user-agent") or "unknown",
        referrer=request.headers.get("referer") or request.headers.get("referrer") or "direct",
        host=request.headers.get("host"),
    ))
    metrics.record_redirect(result.state.value, result.click_recorded)
    return to_http(result, loop_detector)
