#!/usr/bin/env python3
"""Redirect canary: checks that /go still sends a live deal to its affiliate URL.

Usage:
  python scripts/canary.py [BASE_URL] [--kill-switch]

BASE_URL defaults to SITE_URL. Exits 1 when the canary fails, so it can gate a
deploy or run from cron. ``--kill-switch`` flips ``forceDirect`` on failure.
"""
import asyncio
import json
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx  # noqa: E402

from config.settings import settings  # noqa: E402
from tradetrends.logging_config import setup_logging  # noqa: E402
from tradetrends.services.canary import run_canary  # noqa: E402
from tradetrends.services.catalog import DealCatalog  # noqa: E402
from tradetrends.services.incidents import IncidentSink  # noqa: E402
from tradetrends.services.redirect import RedirectResolver  # noqa: E402
from tradetrends.storage import create_store  # noqa: E402


async def main(base_url: str, kill_switch: bool) -> int:
    store = create_store()
    catalog = DealCatalog(store)
    async with httpx.AsyncClient(base_url=base_url, timeout=10) as client:
        result = await run_canary(
            client, catalog, RedirectResolver(catalog), IncidentSink(store), kill_switch=kill_switch,
        )
    print(json.dumps(result.to_dict(), indent=2))
    if result.passed:
        print(f"✅ Canary {result.status}")
        return 0
    print(f"🚨 Canary {result.status}: {result.message}")
    return 1


if __name__ == "__main__":
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    setup_logging()
    sys.exit(asyncio.run(main(
        args[0] if args else settings.SITE_URL,
        "--kill-switch" in sys.argv,
    )))
