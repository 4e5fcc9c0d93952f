"""Shared test fixtures — temp-dir storage, a controllable clock, and an ASGI client."""
from __future__ import annotations

import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tradetrends.api import deps
from tradetrends.api.main import app
from tradetrends.middleware.metrics import metrics
from tradetrends.services.catalog import DealCatalog
from tradetrends.services.flags import FlagsReader
from tradetrends.storage import FileStore

# 2025-10-09T08:53:20Z
START_MS = 1_760_000_000_000

ECHO_URL = "https://www.amazon.com/dp/B09B8V1LZ3?tag=tradetrends-20"
HAWAII_URL = "https://www.booking.com/hotel/us/hawaii-resort.html?aid=123456"

AMAZON_DEALS = {"items": [
    {"id": "amz-echo", "title": "Echo Dot", "affiliate_url": ECHO_URL, "status": "published"},
    {"id": "amz-draft", "title": "Unreleased", "affiliate_url": ECHO_URL, "status": "draft"},
    {"id": "amz-self", "title": "Broken", "affiliate_url": "https://tradetrend.netlify.app/deals/echo"},
    {"id": "amz-relative", "title": "Relative", "affiliate_url": "/deals/echo"},
    {"id": "amz-backslash", "title": "Disguised", "affiliate_url": "https://tradetrend.netlify.app\\@www.amazon.com/dp/X"},
    {"id": "amz-sparse", "affiliate_url": ECHO_URL, "image": None, "category": None, "priority": None},
    {"id": "amz-empty", "title": "No link", "affiliate_url": ""},
]}
# Legacy format: bare list, affiliateUrl, no status
TRAVEL_DEALS = [
    {"id": "trv-hawaii", "title": "Hawaii Resort", "affiliateUrl": HAWAII_URL},
]


class FakeClock:
    """Epoch-ms clock that only moves when told to."""

    def __init__(self, start_ms: int = START_MS):
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += int(seconds * 1000)


def write_catalogs(data_dir, amazon=AMAZON_DEALS, travel=TRAVEL_DEALS):
    data_dir.mkdir(parents=True, exist_ok=True)
    (data_dir / "amazon.json").write_text(json.dumps(amazon))
    (data_dir / "travel.json").write_text(json.dumps(travel))
    return data_dir


def loop_cookie(resp) -> str | None:
    """Value of the tt_go cookie set by a /go response, if any."""
    for header in resp.headers.get_list("set-cookie"):
        name, _, rest = header.partition("=")
        if name.strip() == "tt_go":
            return rest.split(";", 1)[0]
    return None


@pytest.fixture
def store(tmp_path):
    return FileStore(tmp_path / "state")


@pytest.fixture
def data_dir(tmp_path):
    return write_catalogs(tmp_path / "data")


@pytest.fixture
def catalog(store, data_dir):
    return DealCatalog(store, data_dir=data_dir)


@pytest.fixture
def flags_path(tmp_path):
    return tmp_path / "business.json"


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def client(store, catalog, clock, flags_path):
    app.dependency_overrides[deps.get_store] = lambda: store
    app.dependency_overrides[deps.get_catalog] = lambda: catalog
    app.dependency_overrides[deps.get_clock] = lambda: clock
    app.dependency_overrides[deps.get_flags_reader] = lambda: FlagsReader(flags_path)
    metrics.reset()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
