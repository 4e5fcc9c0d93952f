"""Cached external-trend snapshot (``tt_trends``), refreshed by admins.

Only per-source fetch status is recorded from the live pages; item lists
come from the curated fallback so nothing here depends on scraping page
markup.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from config.settings import settings
from tradetrends.models.click import utc_now_iso
from tradetrends.storage import KeyValueStore

logger = logging.getLogger(__name__)

TRENDS_KEY = "tt_trends"
USER_AGENT = "Mozilla/5.0 (compatible; TradeTrends/1.0; +https://tradetrend.netlify.app)"

TREND_SOURCES = [
    {"url": "https://www.amazon.com/gp/movers-and-shakers", "name": "Amazon Movers & Shakers", "type": "amazon"},
    {"url": "https://www.amazon.com/gp/bestsellers", "name": "Amazon Best Sellers", "type": "amazon"},
]

CURATED_TRAVEL = [
    {"title": "Hawaii Resort Packages", "source": "Curated", "category": "Travel Trending", "link": None},
    {"title": "European City Breaks", "source": "Curated", "category": "Travel Trending", "link": None},
    {"title": "All-Inclusive Caribbean", "source": "Curated", "category": "Travel Trending", "link": None},
]


def is_cache_valid(cached: Any, max_age_hours: float | None = None, now: datetime | None = None) -> bool:
    """True if ``cached.generatedAt`` is younger than ``max_age_hours``."""
    if not isinstance(cached, dict) or not cached.get("generatedAt"):
        return False
    max_age_hours = settings.TRENDS_MAX_AGE_HOURS if max_age_hours is None else max_age_hours
    try:
        generated = datetime.fromisoformat(str(cached["generatedAt"]).replace("Z", "+00:00"))
    except ValueError:
        return False
    if generated.tzinfo is None:
        generated = generated.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return (now - generated).total_seconds() / 3600 < max_age_hours


async def fetch_trends(client: httpx.AsyncClient, sources: list[dict] | None = None) -> dict:
    results: dict = {"generatedAt": utc_now_iso(), "sources": [], "items": []}
    for source in sources or TREND_SOURCES:
        try:
            resp = await client.get(source["url"], headers={"User-Agent": USER_AGENT}, timeout=8)
            resp.raise_for_status()
            results["sources"].append({
                "name": source["name"],
                "fetchedAt": utc_now_iso(),
                "status": resp.status_code,
                "itemCount": 0,
            })
        except httpx.HTTPError as e:
            logger.warning("Failed to fetch %s: %s", source["name"], e)
            results["sources"].append({"name": source["name"], "error": str(e), "fetchedAt": utc_now_iso()})

    if not any(i.get("category") == "Travel Trending" for i in results["items"]):
        results["items"].extend(dict(i) for i in CURATED_TRAVEL)
    return results


async def get_trends(store: KeyValueStore, now: datetime | None = None) -> dict:
    cached = await store.get(TRENDS_KEY)
    if isinstance(cached, dict) and is_cache_valid(cached, now=now):
        return cached
    if isinstance(cached, dict):
        return {**cached, "stale": True, "message": "Data is stale. Trigger refresh to update."}
    return {
        "generatedAt": None,
        "sources": [],
        "items": [],
        "message": "No trends data available. Trigger a refresh.",
    }


async def refresh_trends(
    store: KeyValueStore,
    client: httpx.AsyncClient,
    force: bool = False,
    now: Optional[datetime] = None,
) -> dict:
    """Fetch a new snapshot unless the cached one is still fresh (or ``force``)."""
    cached = await store.get(TRENDS_KEY)
    if not force and isinstance(cached, dict) and is_cache_valid(cached, now=now):
        return {**cached, "message": "Cache still valid. Use ?force=true to refresh anyway."}

    try:
        trends = await fetch_trends(client)
    except Exception as e:
        logger.exception("Refresh trends error")
        if isinstance(cached, dict):
            return {**cached, "error": "Refresh failed, returning cached data", "errorMessage": str(e)}
        raise

    if not await store.set(TRENDS_KEY, trends):
        logger.error("Could not persist refreshed trends")
    return {**trends, "message": "Trends refreshed successfully"}
