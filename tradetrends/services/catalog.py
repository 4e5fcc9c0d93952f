"""Deal catalog reader.

Catalogs are owned by the CMS: ``deals-amazon`` / ``deals-travel`` in the
store, or ``<DATA_DIR>/amazon.json`` / ``travel.json`` when the store has no
copy. Both ``{"items": [...]}`` and a bare list are accepted.
"""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from config.settings import settings
from tradetrends.models.deal import Deal, Network
from tradetrends.storage import KeyValueStore

logger = logging.getLogger(__name__)


def catalog_key(network: Network) -> str:
    return f"deals-{network.value}"


def _items(doc) -> list:
    if isinstance(doc, list):
        return doc
    if isinstance(doc, dict) and isinstance(doc.get("items"), list):
        return doc["items"]
    return []


def parse_deals(doc, network: Network) -> list[Deal]:
    """Validate raw catalog items; malformed entries are skipped."""
    deals: list[Deal] = []
    for raw in _items(doc):
        if not isinstance(raw, dict):
            continue
        data = dict(raw)
        # Legacy items carry affiliateUrl instead of affiliate_url
        if not data.get("affiliate_url") and data.get("affiliateUrl"):
            data["affiliate_url"] = data["affiliateUrl"]
        data["network"] = network
        try:
            deals.append(Deal.model_validate(data))
        except ValidationError as e:
            logger.warning("Skipping malformed %s deal %r: %s", network.value, raw.get("id"), e.error_count())
    return deals


class DealCatalog:
    def __init__(self, store: KeyValueStore | None = None, data_dir: str | Path | None = None):
        self.store = store
        self.data_dir = Path(data_dir or settings.DATA_DIR)

    def _read_file(self, network: Network):
        path = self.data_dir / f"{network.value}.json"
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            logger.exception("Failed to load deals from %s", path)
            return None

    async def load(self, network: Network) -> list[Deal]:
        doc = None
        if self.store is not None:
            doc = await self.store.get(catalog_key(network))
        if doc is None:
            doc = await asyncio.to_thread(self._read_file, network)
        return parse_deals(doc, network)

    async def load_all(self) -> dict[Network, list[Deal]]:
        results = await asyncio.gather(*(self.load(n) for n in Network))
        return dict(zip(Network, results))

    async def find(self, deal_id: str) -> Optional[Deal]:
        """Look a deal up by id across every network."""
        for deals in (await self.load_all()).values():
            for deal in deals:
                if deal.id == deal_id:
                    return deal
        return None

    async def published(self, network: Network) -> list[Deal]:
        return [d for d in await self.load(network) if d.is_published]
