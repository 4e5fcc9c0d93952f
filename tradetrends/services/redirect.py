"""Destination resolution and self-redirect protection for /go.

A deal whose affiliate URL points back at this site (our hostnames,
localhost, loopback, a relative URL, or a URL with backslashes or
whitespace that a browser may resolve to a different host) could bounce
the browser between us and ourselves forever. Those resolve to
``SELF_REDIRECT`` and must never be emitted as a Location.
"""
from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional
from urllib.parse import urlsplit

from config.settings import settings
from tradetrends.models.deal import Deal
from tradetrends.services.catalog import DealCatalog

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    ALLOW = "allow"
    NOT_FOUND = "not_found"
    SELF_REDIRECT = "self_redirect"


@dataclass(frozen=True)
class Resolution:
    outcome: Outcome
    destination: Optional[str] = None
    deal: Optional[Deal] = None


def _host_matches(host: str, patterns: Iterable[str]) -> bool:
    return any(host == p or host.endswith("." + p) for p in patterns)


def _is_loopback(host: str) -> bool:
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return False
    return addr.is_loopback or addr.is_unspecified


def has_ambiguous_chars(url: str) -> bool:
    """Backslashes, whitespace or control characters that browsers and urlsplit read differently."""
    return any(c == "\\" or c.isspace() or ord(c) < 0x20 or ord(c) == 0x7f for c in url)


def hostname_of(url: str) -> str | None:
    """Lower-cased hostname, ``""`` for a relative URL, ``None`` if unparseable."""
    try:
        return (urlsplit(url).hostname or "").lower().rstrip(".")
    except ValueError:
        return None


class RedirectResolver:
    def __init__(
        self,
        catalog: DealCatalog,
        forbidden_hosts: Iterable[str] | None = None,
        direct_allowed_hosts: Iterable[str] | None = None,
    ):
        self.catalog = catalog
        hosts = set(forbidden_hosts if forbidden_hosts is not None else settings.FORBIDDEN_HOSTS)
        site_host = hostname_of(settings.SITE_URL)
        if site_host:
            hosts.add(site_host)
        self.forbidden_hosts = {h.lower() for h in hosts if h}
        self.direct_allowed_hosts = [
            h.lower() for h in (direct_allowed_hosts if direct_allowed_hosts is not None
                                else settings.DIRECT_URL_ALLOWED_HOSTS)
        ]

    def is_forbidden_host(self, host: str, extra: Iterable[str] = ()) -> bool:
        if _is_loopback(host):
            return True
        return _host_matches(host, self.forbidden_hosts | {e.lower() for e in extra if e})

    def check_destination(self, url: str, extra_forbidden: Iterable[str] = ()) -> Outcome:
        """ALLOW unless ``url`` lands on our own site.

        An unparseable URL is allowed through as-is: a parse failure does not
        mean a loop, and the browser will sort out navigation.
        """
        if has_ambiguous_chars(url):
            # A browser may land somewhere other than the host we would check
            return Outcome.SELF_REDIRECT
        host = hostname_of(url)
        if host is None:
            logger.warning("Unparseable destination %r, passing through", url)
            return Outcome.ALLOW
        if host == "":
            # Relative URL: the browser resolves it against our own origin
            return Outcome.SELF_REDIRECT
        if self.is_forbidden_host(host, extra_forbidden):
            return Outcome.SELF_REDIRECT
        return Outcome.ALLOW

    async def resolve(self, deal_id: str, extra_forbidden: Iterable[str] = ()) -> Resolution:
        """Find the deal and decide whether its affiliate URL is safe to redirect to."""
        deal = await self.catalog.find(deal_id)
        if deal is None or not deal.is_published or not deal.affiliate_url:
            if deal is not None:
                logger.warning("Deal %s not redirectable (status=%s, url=%r)",
                               deal_id, deal.status.value, deal.affiliate_url)
            return Resolution(Outcome.NOT_FOUND, deal=deal)

        destination = deal.affiliate_url
        outcome = self.check_destination(destination, extra_forbidden)
        if outcome == Outcome.SELF_REDIRECT:
            logger.error("Self-redirect blocked for deal %s -> %s", deal_id, destination)
        return Resolution(outcome, destination=destination, deal=deal)

    def check_direct_url(self, url: str | None, extra_forbidden: Iterable[str] = ()) -> Optional[str]:
        """Validate the ``?u=`` fallback: absolute http(s) URL on an allow-listed, non-forbidden host."""
        if not url:
            return None
        url = url.strip()
        if has_ambiguous_chars(url):
            logger.info("Direct URL %r rejected: ambiguous characters", url)
            return None
        try:
            parts = urlsplit(url)
        except ValueError:
            return None
        host = (parts.hostname or "").lower().rstrip(".")
        if parts.scheme not in ("http", "https") or not host:
            return None
        if self.is_forbidden_host(host, extra_forbidden):
            return None
        if not _host_matches(host, self.direct_allowed_hosts):
            logger.info("Direct URL host %s not allow-listed", host)
            return None
        return url
