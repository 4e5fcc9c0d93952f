#!/usr/bin/env python3
"""TradeTrends Analytics CLI — inspect click storage from the shell.

Usage:
  python scripts/analytics_cli.py init          # Create analytics keys if missing
  python scripts/analytics_cli.py summary       # Print all-time click report
  python scripts/analytics_cli.py window [days] # Print click-log stats for the last N days
  python scripts/analytics_cli.py export        # Dump the summary as JSON
"""
import asyncio
import json
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tradetrends.logging_config import setup_logging  # noqa: E402
from tradetrends.services import analytics  # noqa: E402
from tradetrends.storage import DatabaseStore, create_store  # noqa: E402


async def _store():
    store = create_store()
    if isinstance(store, DatabaseStore):
        await store.create_tables()
    return store


async def cmd_init():
    store = await _store()
    if await analytics.initialize_analytics(store):
        print("✅ Analytics storage initialized")
    else:
        print("Analytics storage already initialized (or storage unavailable)")


async def cmd_summary():
    s = await analytics.get_analytics_summary(await _store())

    print("=" * 60)
    print("  TradeTrends Click Report")
    print("=" * 60)
    print()
    if not s["initialized"]:
        print("  ⚠️  Analytics not initialized — run `init` first")
        print()
    print(f"  🔗 Total Clicks: {s['totalClicks']:,}")
    print(f"     Last updated: {s['lastUpdated'] or 'never'}")
    print()
    print("  📊 By Network")
    for network, count in sorted(s["clicksByNetwork"].items()):
        print(f"     {network:<12} {count:>8,}")
    print()
    print("  📅 Last 7 Days")
    days = s["clicksByDay"][-7:]
    max_val = max((d["clicks"] for d in days), default=0) or 1
    for d in days:
        bar_len = int(d["clicks"] / max_val * 30)
        print(f"     {d['date']}  {'█' * bar_len} {d['clicks']:,}")
    print()
    print("  🏆 Top Deals")
    for i, deal in enumerate(s["topDeals"], 1):
        print(f"     {i:>2}. {deal['id']:<30} {deal['clicks']:>6,}")
    print()
    print("=" * 60)


async def cmd_window():
    from tradetrends.api.analytics import parse_days
    days = parse_days(sys.argv[2] if len(sys.argv) > 2 else None)
    w = await analytics.get_click_window(await _store(), days)
    print(json.dumps(w, indent=2))


async def cmd_export():
    s = await analytics.get_analytics_summary(await _store())
    print(json.dumps(s, indent=2, default=str))


COMMANDS = {
    "init": cmd_init,
    "summary": cmd_summary,
    "window": cmd_window,
    "export": cmd_export,
}


def main():
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        print(__doc__)
        sys.exit(1)
    setup_logging()
    asyncio.run(COMMANDS[sys.argv[1]]())


if __name__ == "__main__":
    main()
