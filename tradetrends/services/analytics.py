"""Click analytics aggregation over the key-value store.

Four keys back the analytics, each created empty-but-valid on first use:

- ``analytics:summary``  totals and per-network counts
- ``analytics:daily``    one bucket per UTC day
- ``analytics:deals``    one counter per deal id
- ``tt_clicks``          bounded raw click log (most recent entries only)

Every public function here swallows storage failures and returns safe
defaults. Analytics are approximate by design: concurrent clicks may
interleave their read-modify-write cycles and undercount.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from config.settings import settings
from tradetrends.errors import StorageError
from tradetrends.models.click import ClickEvent, utc_now_iso
from tradetrends.storage import KeyValueStore, atomic_update

logger = logging.getLogger(__name__)

SUMMARY_KEY = "analytics:summary"
DAILY_KEY = "analytics:daily"
DEALS_KEY = "analytics:deals"
CLICKS_KEY = "tt_clicks"

TOP_DEALS_LIMIT = 10

# Writes abandoned by the timeout keep running; hold a reference so they finish
_pending_writes: set[asyncio.Task] = set()


def _empty_summary() -> dict:
    return {
        "initialized": True,
        "initializedAt": utc_now_iso(),
        "totalClicks": 0,
        "clicksByNetwork": {},
        "version": 1,
    }


def _is_valid(key: str, doc: Any) -> bool:
    if not isinstance(doc, dict):
        return False
    if key == SUMMARY_KEY:
        return bool(doc.get("initialized"))
    field = {DAILY_KEY: "buckets", DEALS_KEY: "deals", CLICKS_KEY: "clicks"}[key]
    expected = list if key == CLICKS_KEY else dict
    return isinstance(doc.get(field), expected)


def _empty(key: str) -> dict:
    if key == SUMMARY_KEY:
        return _empty_summary()
    field = {DAILY_KEY: "buckets", DEALS_KEY: "deals", CLICKS_KEY: "clicks"}[key]
    return {field: [] if key == CLICKS_KEY else {}, "lastUpdated": utc_now_iso()}


async def initialize_analytics(store: KeyValueStore) -> bool:
    """Make sure all four keys exist with the right shape. Idempotent.

    An already-initialized summary is never overwritten. Returns False if any
    missing key could not be written.
    """
    ok = True
    try:
        for key in (SUMMARY_KEY, DAILY_KEY, DEALS_KEY, CLICKS_KEY):
            if _is_valid(key, await store.get(key)):
                continue
            if await store.set(key, _empty(key)):
                logger.info("Created empty %s", key)
            else:
                logger.error("Could not create %s", key)
                ok = False
    except Exception:
        logger.exception("Failed to initialize analytics")
        return False
    return ok


# ── Update functions (pure: document in, document out) ──────────────────────

def _bump_summary(doc: dict, event: ClickEvent) -> dict:
    if not _is_valid(SUMMARY_KEY, doc):
        doc = {**_empty_summary(), **(doc if isinstance(doc, dict) else {})}
        doc["initialized"] = True
    by_network = doc.get("clicksByNetwork")
    if not isinstance(by_network, dict):
        by_network = {}
    by_network[event.network] = int(by_network.get(event.network, 0)) + 1
    doc["clicksByNetwork"] = by_network
    doc["totalClicks"] = int(doc.get("totalClicks") or 0) + 1
    doc["lastUpdated"] = utc_now_iso()
    return doc


def _bump_daily(doc: dict, event: ClickEvent) -> dict:
    buckets = doc.get("buckets") if isinstance(doc.get("buckets"), dict) else {}
    day = event.day()
    bucket = buckets.get(day)
    if not isinstance(bucket, dict):
        bucket = {"date": day, "clicks": 0, "byNetwork": {}}
    bucket["clicks"] = int(bucket.get("clicks") or 0) + 1
    by_network = bucket.get("byNetwork") if isinstance(bucket.get("byNetwork"), dict) else {}
    by_network[event.network] = int(by_network.get(event.network, 0)) + 1
    bucket["byNetwork"] = by_network
    buckets[day] = bucket
    return {**doc, "buckets": buckets, "lastUpdated": utc_now_iso()}


def _bump_deal(doc: dict, event: ClickEvent) -> dict:
    deals = doc.get("deals") if isinstance(doc.get("deals"), dict) else {}
    counter = deals.get(event.deal_id)
    if not isinstance(counter, dict):
        counter = {"id": event.deal_id, "clicks": 0}
    counter["clicks"] = int(counter.get("clicks") or 0) + 1
    deals[event.deal_id] = counter
    return {**doc, "deals": deals, "lastUpdated": utc_now_iso()}


def _append_click(doc: dict, event: ClickEvent, log_max: int) -> dict:
    clicks = doc.get("clicks") if isinstance(doc.get("clicks"), list) else []
    clicks.append(event.to_log_entry())
    if len(clicks) > log_max:
        clicks = clicks[-log_max:]
    return {**doc, "clicks": clicks, "lastUpdated": utc_now_iso()}


async def _write_click(store: KeyValueStore, event: ClickEvent, log_max: int) -> bool:
    await atomic_update(store, SUMMARY_KEY, lambda d: _bump_summary(d, event))
    await atomic_update(store, DAILY_KEY, lambda d: _bump_daily(d, event))
    await atomic_update(store, DEALS_KEY, lambda d: _bump_deal(d, event))
    await atomic_update(store, CLICKS_KEY, lambda d: _append_click(d, event, log_max))
    return True


def _log_abandoned(task: asyncio.Task) -> None:
    _pending_writes.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.error("Abandoned click write failed: %s", task.exception())


async def record_click(
    store: KeyValueStore,
    event: ClickEvent,
    timeout: float | None = None,
    log_max: int | None = None,
) -> bool:
    """Fold one click into every aggregate. Best-effort: never raises.

    The four writes race a hard timeout. On timeout we stop waiting and report
    failure, but the write task is left running, so a timed-out click may
    still partially land.
    """
    if not event.network or not event.deal_id:
        logger.error("Invalid click event schema: %s", event)
        return False

    timeout = settings.CLICK_WRITE_TIMEOUT_SECONDS if timeout is None else timeout
    log_max = settings.CLICK_LOG_MAX if log_max is None else log_max

    task = asyncio.ensure_future(_write_click(store, event, log_max))
    _pending_writes.add(task)
    task.add_done_callback(_log_abandoned)

    done, _ = await asyncio.wait({task}, timeout=timeout)
    if not done:
        logger.error("Click write timed out after %.1fs: %s/%s", timeout, event.network, event.deal_id)
        return False
    try:
        task.result()
    except StorageError as e:
        logger.error("Failed to record click %s/%s: %s", event.network, event.deal_id, e)
        return False
    except Exception:
        logger.exception("Failed to record click %s/%s", event.network, event.deal_id)
        return False
    logger.info("Click recorded: %s/%s", event.network, event.deal_id)
    return True


# ── Read side ───────────────────────────────────────────────────────────────

def _safe_summary(initialized: bool = False) -> dict:
    return {
        "initialized": initialized,
        "totalClicks": 0,
        "clicksByNetwork": {},
        "clicksByDay": [],
        "topDeals": [],
        "lastUpdated": None,
    }


def _top_deals(deals: dict) -> list[dict]:
    rows = [
        {"id": str(v.get("id") or k), "clicks": int(v.get("clicks") or 0)}
        for k, v in deals.items() if isinstance(v, dict)
    ]
    rows.sort(key=lambda r: r["clicks"], reverse=True)
    return rows[:TOP_DEALS_LIMIT]


async def get_analytics_summary(store: KeyValueStore) -> dict:
    """All-time aggregates with a guaranteed schema: no field is ever None except ``lastUpdated``."""
    try:
        await initialize_analytics(store)
        summary = await store.get(SUMMARY_KEY) or {}
        daily = await store.get(DAILY_KEY) or {}
        deals = await store.get(DEALS_KEY) or {}

        buckets = daily.get("buckets") if isinstance(daily, dict) else None
        by_day = [
            {
                "date": str(b.get("date") or day),
                "clicks": int(b.get("clicks") or 0),
                "byNetwork": b.get("byNetwork") if isinstance(b.get("byNetwork"), dict) else {},
            }
            for day, b in (buckets or {}).items() if isinstance(b, dict)
        ]
        by_day.sort(key=lambda b: b["date"])

        deal_map = deals.get("deals") if isinstance(deals, dict) else None
        by_network = summary.get("clicksByNetwork") if isinstance(summary, dict) else None
        return {
            "initialized": bool(summary.get("initialized", False)),
            "totalClicks": int(summary.get("totalClicks") or 0),
            "clicksByNetwork": by_network if isinstance(by_network, dict) else {},
            "clicksByDay": by_day,
            "topDeals": _top_deals(deal_map if isinstance(deal_map, dict) else {}),
            "lastUpdated": summary.get("lastUpdated") or None,
        }
    except Exception:
        logger.exception("Failed to get analytics summary")
        return _safe_summary()


def _parse_ts(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


async def get_click_window(store: KeyValueStore, days: int, now: datetime | None = None) -> dict:
    """Aggregate the raw click log over the trailing ``days`` days."""
    now = now or datetime.now(timezone.utc)
    result = {
        "initialized": False,
        "totalClicks": 0,
        "days": days,
        "byNetwork": {},
        "topDeals": [],
        "byDay": [],
        "lastUpdated": None,
    }
    try:
        summary = await store.get(SUMMARY_KEY) or {}
        log = await store.get(CLICKS_KEY) or {}
    except Exception:
        logger.exception("Analytics window read failed")
        return result

    if isinstance(summary, dict):
        result["initialized"] = bool(summary.get("initialized", False))
        result["lastUpdated"] = summary.get("lastUpdated") or None

    clicks = log.get("clicks") if isinstance(log, dict) else None
    cutoff = now - timedelta(days=days)
    by_network: dict[str, int] = {}
    by_deal: dict[str, int] = {}
    by_day: dict[str, int] = {}
    total = 0
    for click in clicks if isinstance(clicks, list) else []:
        if not isinstance(click, dict):
            continue
        ts = _parse_ts(click.get("ts"))
        if ts is None or ts < cutoff:
            continue
        total += 1
        network = str(click.get("network") or "unknown")
        deal_id = str(click.get("id") or "unknown")
        day = ts.astimezone(timezone.utc).strftime("%Y-%m-%d")
        by_network[network] = by_network.get(network, 0) + 1
        by_deal[deal_id] = by_deal.get(deal_id, 0) + 1
        by_day[day] = by_day.get(day, 0) + 1

    result["totalClicks"] = total
    result["byNetwork"] = by_network
    result["topDeals"] = [
        {"id": deal_id, "clicks": count}
        for deal_id, count in sorted(by_deal.items(), key=lambda kv: kv[1], reverse=True)[:TOP_DEALS_LIMIT]
    ]
    result["byDay"] = [{"date": d, "clicks": c} for d, c in sorted(by_day.items())]
    return result
