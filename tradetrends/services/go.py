"""The /go redirect orchestrator.

START -> VALIDATE_INPUT -> CHECK_LOOP -> RESOLVE_DEAL -> CHECK_SELF_REDIRECT
      -> CHECK_RATE_LIMIT -> RECORD_CLICK -> EMIT_REDIRECT

with the alternate terminals EMIT_HOME_REDIRECT, EMIT_LOOP_PAGE,
EMIT_RATE_LIMITED and EMIT_SELF_REDIRECT_PAGE.

Framework-agnostic: takes a ``GoRequest`` and returns a ``GoResponse``. Each gate raises
its ``TradeTrendsError`` and ``handle`` maps it to a terminal; it never
raises itself. Any unexpected fault ends in EMIT_HOME_REDIRECT, because a
broken redirect page loses the click while the homepage keeps the visitor.
It never writes storage itself; the rate limiter, aggregator and incident
sink own their keys.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from config.settings import settings
from tradetrends.errors import (
    InputError,
    LoopDetectedError,
    NotFoundError,
    RateLimitExceeded,
    SelfRedirectError,
)
from tradetrends.models.click import ClickEvent, hash_ip
from tradetrends.models.deal import Network
from tradetrends.services import analytics
from tradetrends.services.flags import FlagsReader
from tradetrends.services.incidents import IncidentSeverity, IncidentSink
from tradetrends.services.loop_detector import LoopDetector, LoopVerdict
from tradetrends.services.pages import loop_detected_page, self_redirect_page
from tradetrends.services.rate_limit import RateLimiter
from tradetrends.services.redirect import Outcome, RedirectResolver
from tradetrends.storage import KeyValueStore

logger = logging.getLogger(__name__)

NO_CACHE = "no-cache, no-store, must-revalidate"


class GoState(str, Enum):
    START = "START"
    VALIDATE_INPUT = "VALIDATE_INPUT"
    CHECK_LOOP = "CHECK_LOOP"
    RESOLVE_DEAL = "RESOLVE_DEAL"
    CHECK_SELF_REDIRECT = "CHECK_SELF_REDIRECT"
    CHECK_RATE_LIMIT = "CHECK_RATE_LIMIT"
    RECORD_CLICK = "RECORD_CLICK"
    EMIT_REDIRECT = "EMIT_REDIRECT"
    EMIT_HOME_REDIRECT = "EMIT_HOME_REDIRECT"
    EMIT_LOOP_PAGE = "EMIT_LOOP_PAGE"
    EMIT_RATE_LIMITED = "EMIT_RATE_LIMITED"
    EMIT_SELF_REDIRECT_PAGE = "EMIT_SELF_REDIRECT_PAGE"


@dataclass(frozen=True)
class GoRequest:
    deal_id: Optional[str]
    now_ms: int
    network: Optional[str] = None
    direct_url: Optional[str] = None
    loop_token: Optional[str] = None
    client_ip: str = "unknown"
    user_agent: str = "unknown"
    referrer: str = "direct"
    host: Optional[str] = None  # our own Host header, always forbidden as a destination


@dataclass
class GoResponse:
    status: int
    state: GoState
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""
    media_type: Optional[str] = None
    loop_token: Optional[str] = None  # set as a cookie when present
    clear_loop_token: bool = False
    click_recorded: Optional[bool] = None
    trail: list[GoState] = field(default_factory=list)

    @property
    def location(self) -> Optional[str]:
        return self.headers.get("Location")


class GoEndpoint:
    def __init__(
        self,
        store: KeyValueStore,
        resolver: RedirectResolver,
        loop_detector: LoopDetector,
        rate_limiter: RateLimiter,
        incidents: IncidentSink,
        flags: FlagsReader | None = None,
        salt: str | None = None,
        record_timeout: float | None = None,
    ):
        self.store = store
        self.resolver = resolver
        self.loop_detector = loop_detector
        self.rate_limiter = rate_limiter
        self.incidents = incidents
        self.flags = flags
        self.salt = salt if salt is not None else settings.TT_SALT
        self.record_timeout = record_timeout

    async def handle(self, req: GoRequest) -> GoResponse:
        trail: list[GoState] = [GoState.START]
        try:
            response = await self._run(req, trail)
        except (InputError, NotFoundError) as e:
            logger.warning("Go fallback to home: %s", e)
            response = self._home(trail)
        except LoopDetectedError as e:
            await self.incidents.report(
                "redirect_loop", IncidentSeverity.WARNING,
                "Client bounced through /go repeatedly", deal_id=e.deal_id, hits=e.hits,
            )
            trail.append(GoState.EMIT_LOOP_PAGE)
            response = GoResponse(
                200, GoState.EMIT_LOOP_PAGE,
                headers={"Cache-Control": NO_CACHE},
                body=loop_detected_page(e.destination),
                media_type="text/html",
                clear_loop_token=True,
            )
        except SelfRedirectError as e:
            await self.incidents.report(
                "self_redirect", IncidentSeverity.CRITICAL,
                "Deal destination points at our own site",
                deal_id=e.deal_id, location=e.destination,
            )
            trail.append(GoState.EMIT_SELF_REDIRECT_PAGE)
            response = GoResponse(
                200, GoState.EMIT_SELF_REDIRECT_PAGE,
                headers={"Cache-Control": NO_CACHE},
                body=self_redirect_page(),
                media_type="text/html",
            )
        except RateLimitExceeded as e:
            logger.warning("%s", e)
            trail.append(GoState.EMIT_RATE_LIMITED)
            response = GoResponse(
                429, GoState.EMIT_RATE_LIMITED,
                headers={"Retry-After": str(e.retry_after), "Cache-Control": NO_CACHE},
                body="Too many requests. Please try again later.",
                media_type="text/plain",
            )
        except Exception:
            logger.exception("Go handler error for id=%r", req.deal_id)
            response = self._home(trail)
        response.trail = trail
        return response

    def _home(self, trail: list[GoState]) -> GoResponse:
        trail.append(GoState.EMIT_HOME_REDIRECT)
        return GoResponse(302, GoState.EMIT_HOME_REDIRECT, headers={"Location": "/", "Cache-Control": NO_CACHE})

    # ── gates: each either passes or raises the matching TradeTrendsError ───

    async def _run(self, req: GoRequest, trail: list[GoState]) -> GoResponse:
        trail.append(GoState.VALIDATE_INPUT)
        deal_id = (req.deal_id or "").strip()
        if not deal_id:
            raise InputError("missing deal id")

        if self.flags is not None and self.flags.read().force_direct:
            logger.info("Kill switch active; /go still serving legacy link for %s", deal_id)

        extra_forbidden = [req.host.split(":")[0].lower()] if req.host else []

        trail.append(GoState.CHECK_LOOP)
        loop = self.loop_detector.check(deal_id, req.loop_token, req.now_ms)
        if loop.verdict == LoopVerdict.LOOP:
            resolution = await self.resolver.resolve(deal_id, extra_forbidden)
            destination = resolution.destination if resolution.outcome == Outcome.ALLOW else None
            raise LoopDetectedError(deal_id, loop.state.hits, destination)

        trail.append(GoState.RESOLVE_DEAL)
        resolution = await self.resolver.resolve(deal_id, extra_forbidden)
        if resolution.outcome == Outcome.NOT_FOUND:
            direct = self.resolver.check_direct_url(req.direct_url, extra_forbidden)
            if direct is None:
                raise NotFoundError(f"Deal not found: {deal_id}")
            logger.info("Deal %s not found, using direct URL fallback", deal_id)
            destination = direct
            network = req.network if req.network in {n.value for n in Network} else Network.AMAZON.value
        else:
            destination = resolution.destination
            network = resolution.deal.network.value

        trail.append(GoState.CHECK_SELF_REDIRECT)
        if resolution.outcome == Outcome.SELF_REDIRECT:
            raise SelfRedirectError(deal_id, destination)

        trail.append(GoState.CHECK_RATE_LIMIT)
        ip_hash = hash_ip(req.client_ip, self.salt)
        decision = await self.rate_limiter.check(ip_hash, req.now_ms)
        if not decision.allowed:
            raise RateLimitExceeded(ip_hash, decision.retry_after)

        trail.append(GoState.RECORD_CLICK)
        event = ClickEvent.from_ms(
            req.now_ms,
            network=network,
            deal_id=deal_id,
            ip_hash=ip_hash,
            user_agent=req.user_agent or "unknown",
            referrer=req.referrer or "direct",
        )
        try:
            recorded = await analytics.record_click(self.store, event, timeout=self.record_timeout)
        except Exception:
            logger.exception("Click recording raised, continuing redirect")
            recorded = False
        if not recorded:
            logger.error("Click recording failed, but continuing redirect")

        trail.append(GoState.EMIT_REDIRECT)
        return GoResponse(
            302, GoState.EMIT_REDIRECT,
            headers={"Location": destination, "Cache-Control": NO_CACHE},
            loop_token=self.loop_detector.encode(loop.state),
            click_recorded=recorded,
        )
