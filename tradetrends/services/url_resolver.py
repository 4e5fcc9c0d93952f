"""Affiliate URL metadata for the CMS: final URL, network, ASIN, keywords.

Follows redirects by hand (HEAD, falling back to a GET) without downloading
pages. Only allow-listed affiliate hosts are fetched.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional
from urllib.parse import urljoin, urlsplit

import httpx

from config.settings import settings

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; TradeTrendsBot/1.0)"
MAX_REDIRECTS = 5

_ASIN_PATTERNS = [
    re.compile(r"/dp/([A-Z0-9]{10})", re.IGNORECASE),
    re.compile(r"/gp/product/([A-Z0-9]{10})", re.IGNORECASE),
    re.compile(r"/([A-Z0-9]{10})(?:/|\?|$)"),
]
_ASIN = re.compile(r"^[A-Z0-9]{10}$")
_PATH_STOPWORDS = {"dp", "gp", "product", "ref", "tag"}


class InvalidURL(ValueError):
    pass


class HostNotAllowed(ValueError):
    pass


@dataclass
class UrlMetadata:
    final_url: str
    hostname: str
    network: str
    asin: Optional[str] = None
    keywords: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "finalUrl": self.final_url,
            "hostname": self.hostname,
            "network": self.network,
            "asin": self.asin,
            "keywords": self.keywords,
        }


def detect_network(hostname: str) -> str:
    lower = hostname.lower()
    if "amazon." in lower or lower in ("amzn.to", "a.co"):
        return "amazon"
    if any(p in lower for p in ("booking.", "expedia.", "hotels.", "airbnb.")):
        return "travel"
    return "other"


def extract_asin(url: str) -> Optional[str]:
    for pattern in _ASIN_PATTERNS:
        match = pattern.search(url)
        if match:
            asin = match.group(1).upper()
            if _ASIN.match(asin):
                return asin
    return None


def extract_keywords(pathname: str) -> list[str]:
    parts = [p for p in pathname.lower().split("/") if len(p) > 2 and p not in _PATH_STOPWORDS]
    words = [w for part in parts for w in part.split("-") if len(w) > 2]
    return words[:10]


def validate_url(url: str | None, allowed_hosts: Iterable[str] | None = None) -> str:
    if not url:
        raise InvalidURL("Missing url parameter")
    try:
        parts = urlsplit(url)
    except ValueError:
        raise InvalidURL("Invalid URL format")
    host = (parts.hostname or "").lower()
    if parts.scheme not in ("http", "https") or not host:
        raise InvalidURL("Invalid URL format")
    allowed = list(allowed_hosts if allowed_hosts is not None else settings.RESOLVE_ALLOWED_HOSTS)
    if not any(host == h or host.endswith("." + h) for h in allowed):
        raise HostNotAllowed(f"Host not allowed: {host}")
    return url


async def resolve_final_url(client: httpx.AsyncClient, url: str, max_redirects: int = MAX_REDIRECTS) -> str:
    current = url
    for _ in range(max_redirects):
        try:
            resp = await client.head(current, headers={"User-Agent": USER_AGENT}, follow_redirects=False)
        except httpx.HTTPError:
            try:
                resp = await client.get(current, headers={"User-Agent": USER_AGENT}, follow_redirects=True)
                return str(resp.url)
            except httpx.HTTPError:
                return current
        location = resp.headers.get("location")
        if 300 <= resp.status_code < 400 and location:
            current = urljoin(current, location)
            continue
        return current
    return current


async def resolve_metadata(
    client: httpx.AsyncClient,
    url: str | None,
    allowed_hosts: Iterable[str] | None = None,
) -> UrlMetadata:
    """Raises ``InvalidURL`` / ``HostNotAllowed`` for bad input."""
    url = validate_url(url, allowed_hosts)
    final_url = await resolve_final_url(client, url)
    parts = urlsplit(final_url)
    hostname = (parts.hostname or "").lower()
    if hostname.startswith("www."):
        hostname = hostname[4:]
    network = detect_network(hostname)
    return UrlMetadata(
        final_url=final_url,
        hostname=hostname,
        network=network,
        asin=extract_asin(final_url) if network == "amazon" else None,
        keywords=extract_keywords(parts.path),
    )
