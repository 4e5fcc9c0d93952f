"""Per-identity sliding-window click budget, persisted in the ``rate_limits`` key.

Each identity (salted IP hash) keeps the epoch-ms timestamps of its accepted
clicks. A check drops timestamps older than the window, rejects when the rest
reach the limit, and otherwise records ``now``.

Fails OPEN: if storage is unavailable the click is allowed. Keeping the
revenue path up matters more than strict enforcement here. Concurrent checks
for the same identity can both pass (see ``atomic_update``).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from config.settings import settings
from tradetrends.errors import StorageError
from tradetrends.storage import KeyValueStore, atomic_update

logger = logging.getLogger(__name__)

RATE_LIMITS_KEY = "rate_limits"


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int
    limit: int
    retry_after: int = 0  # seconds until the oldest click leaves the window


def _last_seen(entry) -> int:
    clicks = entry.get("clicks") if isinstance(entry, dict) else None
    return max((t for t in clicks or [] if isinstance(t, (int, float))), default=0)


def prune_identities(limits: dict, max_identities: int) -> dict:
    """Keep only the ``max_identities`` most recently active identities."""
    if len(limits) <= max_identities:
        return limits
    ranked = sorted(limits.items(), key=lambda kv: _last_seen(kv[1]), reverse=True)
    return dict(ranked[:max_identities])


class RateLimiter:
    def __init__(
        self,
        store: KeyValueStore,
        max_clicks: int | None = None,
        window_seconds: int | None = None,
        max_identities: int | None = None,
    ):
        self.store = store
        self.max_clicks = max_clicks or settings.RATE_LIMIT_MAX_CLICKS
        self.window_ms = int((window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS) * 1000)
        self.max_identities = max_identities or settings.RATE_LIMIT_MAX_IDENTITIES

    async def check(self, identity: str, now_ms: int) -> RateDecision:
        """Admit or reject one click for ``identity`` at ``now_ms``."""
        decision: dict = {}

        def update(limits: dict) -> dict:
            limits = limits if isinstance(limits, dict) else {}
            entry = limits.get(identity)
            clicks = entry.get("clicks") if isinstance(entry, dict) else None
            recent = [
                t for t in clicks or []
                if isinstance(t, (int, float)) and now_ms - t < self.window_ms
            ]
            if len(recent) >= self.max_clicks:
                decision["allowed"] = False
                decision["oldest"] = min(recent)
                limits[identity] = {"clicks": recent}
                return limits
            recent.append(now_ms)
            decision["allowed"] = True
            decision["count"] = len(recent)
            limits[identity] = {"clicks": recent}
            return prune_identities(limits, self.max_identities)

        try:
            await atomic_update(self.store, RATE_LIMITS_KEY, update)
        except StorageError as e:
            logger.error("Rate limit check error for %s, failing open: %s", identity, e)
            return RateDecision(allowed=True, remaining=self.max_clicks, limit=self.max_clicks)

        if not decision.get("allowed"):
            retry_ms = decision["oldest"] + self.window_ms - now_ms
            return RateDecision(
                allowed=False, remaining=0, limit=self.max_clicks,
                retry_after=max(1, int(-(-retry_ms // 1000))),
            )
        return RateDecision(
            allowed=True,
            remaining=max(0, self.max_clicks - decision["count"]),
            limit=self.max_clicks,
        )
