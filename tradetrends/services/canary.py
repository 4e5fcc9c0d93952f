"""Redirect canary: verifies /go still sends a real deal to an external affiliate URL."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import httpx

from tradetrends.models.click import utc_now_iso
from tradetrends.models.deal import Network
from tradetrends.services.catalog import DealCatalog
from tradetrends.services.flags import enable_kill_switch
from tradetrends.services.incidents import IncidentSeverity, IncidentSink
from tradetrends.services.redirect import Outcome, RedirectResolver

logger = logging.getLogger(__name__)

AFFILIATE_MARKERS = ("amazon", "amzn.to")


@dataclass
class CanaryResult:
    status: str  # PASS, FAILED, SKIPPED, ERROR
    redirect_status: Optional[int] = None
    redirect_location: Optional[str] = None
    tested_deal: Optional[str] = None
    is_self_redirect: bool = False
    is_external: bool = False
    message: str = ""
    timestamp: str = ""

    @property
    def passed(self) -> bool:
        return self.status in ("PASS", "SKIPPED")

    def to_dict(self) -> dict:
        return {k: v for k, v in self.__dict__.items()}


async def run_canary(
    client: httpx.AsyncClient,
    catalog: DealCatalog,
    resolver: RedirectResolver,
    incidents: IncidentSink,
    kill_switch: bool = False,
) -> CanaryResult:
    """Hit /go for the first published amazon deal without following the redirect."""
    try:
        deals = await catalog.published(Network.AMAZON)
        if not deals:
            logger.warning("No published deals found for canary test")
            return CanaryResult(status="SKIPPED", message="No published deals", timestamp=utc_now_iso())

        deal = deals[0]
        resp = await client.get(
            f"/go?network=amazon&id={quote(deal.id, safe='')}",
            follow_redirects=False,
        )
        location = resp.headers.get("location", "")
        is_self = bool(location) and (
            resolver.check_destination(location) == Outcome.SELF_REDIRECT
            or location.startswith("/?network=")
        )
        is_external = any(m in location for m in AFFILIATE_MARKERS)
        result = CanaryResult(
            status="PASS",
            redirect_status=resp.status_code,
            redirect_location=location,
            tested_deal=deal.id,
            is_self_redirect=is_self,
            is_external=is_external,
            timestamp=utc_now_iso(),
        )

        if resp.status_code != 302 or is_self or not is_external:
            result.status = "FAILED"
            result.message = "Redirect canary failed - revenue at risk"
            await incidents.report(
                "redirect_failure", IncidentSeverity.CRITICAL,
                "Canary detected /go redirect failure",
                deal_id=deal.id, network="amazon", status=resp.status_code, location=location,
                root_cause="Self-redirect loop" if is_self else "Invalid redirect",
            )
            if kill_switch:
                enable_kill_switch()
            return result

        logger.info("Redirect canary passed: %s -> %s", deal.id, location)
        return result
    except httpx.HTTPError as e:
        logger.exception("Canary check failed")
        return CanaryResult(status="ERROR", message=str(e), timestamp=utc_now_iso())
