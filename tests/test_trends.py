"""Tests for the trends snapshot service and its endpoints."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from config.settings import settings
from tradetrends.api import deps
from tradetrends.api.main import app
from tradetrends.services.trends import (
    CURATED_TRAVEL,
    TRENDS_KEY,
    fetch_trends,
    get_trends,
    is_cache_valid,
    refresh_trends,
)
from tradetrends.storage import MemoryStore

NOW = datetime(2025, 10, 9, 12, 0, tzinfo=timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


def _mock_client(status: int = 200) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, text="<html></html>")
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _failing_client() -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestCacheValidity:
    def test_fresh(self):
        assert is_cache_valid({"generatedAt": _iso(NOW - timedelta(hours=5))}, 6, now=NOW)

    def test_stale(self):
        assert not is_cache_valid({"generatedAt": _iso(NOW - timedelta(hours=7))}, 6, now=NOW)

    def test_missing_or_garbage(self):
        assert not is_cache_valid(None, now=NOW)
        assert not is_cache_valid({}, now=NOW)
        assert not is_cache_valid({"generatedAt": "yesterday"}, now=NOW)


class TestFetch:
    @pytest.mark.asyncio
    async def test_records_source_status_and_curated_items(self):
        async with _mock_client() as client:
            trends = await fetch_trends(client)
        assert trends["generatedAt"]
        assert [s["status"] for s in trends["sources"]] == [200, 200]
        assert [i["title"] for i in trends["items"]] == [i["title"] for i in CURATED_TRAVEL]

    @pytest.mark.asyncio
    async def test_source_errors_recorded(self):
        async with _failing_client() as client:
            trends = await fetch_trends(client)
        assert all("error" in s for s in trends["sources"])
        assert len(trends["items"]) == len(CURATED_TRAVEL)


class TestGetAndRefresh:
    @pytest.mark.asyncio
    async def test_empty_store(self):
        data = await get_trends(MemoryStore())
        assert data["items"] == []
        assert "Trigger a refresh" in data["message"]

    @pytest.mark.asyncio
    async def test_stale_snapshot_flagged(self):
        store = MemoryStore({TRENDS_KEY: {"generatedAt": _iso(NOW - timedelta(hours=10)), "items": [1]}})
        data = await get_trends(store, now=NOW)
        assert data["stale"] is True
        assert data["items"] == [1]

    @pytest.mark.asyncio
    async def test_refresh_skips_fresh_cache_unless_forced(self):
        store = MemoryStore({TRENDS_KEY: {"generatedAt": _iso(NOW), "items": []}})
        async with _mock_client() as client:
            cached = await refresh_trends(store, client, now=NOW)
            assert "Cache still valid" in cached["message"]
            forced = await refresh_trends(store, client, force=True, now=NOW)
        assert forced["message"] == "Trends refreshed successfully"
        assert len((await store.get(TRENDS_KEY))["items"]) == len(CURATED_TRAVEL)

    @pytest.mark.asyncio
    async def test_refresh_failure_returns_cached(self, monkeypatch):
        import tradetrends.services.trends as trends_mod

        async def boom(client, sources=None):
            raise RuntimeError("parser crashed")

        monkeypatch.setattr(trends_mod, "fetch_trends", boom)
        store = MemoryStore({TRENDS_KEY: {"generatedAt": _iso(NOW - timedelta(hours=10)), "items": ["old"]}})
        async with _mock_client() as client:
            data = await refresh_trends(store, client, now=NOW)
        assert data["items"] == ["old"]
        assert data["error"] == "Refresh failed, returning cached data"


# ── Endpoints ───────────────────────────────────────────────────────────────

@pytest.fixture
def admin_key(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_KEY", "test-admin-key")
    return "test-admin-key"


@pytest.fixture
def mock_http():
    async def override():
        async with _mock_client() as c:
            yield c
    app.dependency_overrides[deps.get_http_client] = override


@pytest.mark.asyncio
async def test_get_trends_endpoint(client):
    resp = await client.get("/api/trends")
    assert resp.status_code == 200
    assert resp.json()["items"] == []


@pytest.mark.asyncio
async def test_refresh_requires_admin(client, admin_key, mock_http):
    resp = await client.post("/api/refresh-trends")
    assert resp.status_code == 403
    assert resp.json()["error"] == "Admin access required"
    resp = await client.post("/api/refresh-trends", headers={"X-Admin-Key": "wrong"})
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_refresh_disabled_without_configured_key(client, monkeypatch, mock_http):
    monkeypatch.setattr(settings, "ADMIN_API_KEY", "")
    resp = await client.post("/api/refresh-trends", headers={"X-Admin-Key": ""})
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_refresh_as_admin(client, admin_key, mock_http):
    resp = await client.post("/api/refresh-trends", params={"force": "true"}, headers={"X-Admin-Key": admin_key})
    assert resp.status_code == 200
    assert resp.json()["message"] == "Trends refreshed successfully"
    data = (await client.get("/api/trends")).json()
    assert len(data["items"]) == len(CURATED_TRAVEL)


@pytest.mark.asyncio
async def test_refresh_error_without_cache_is_500(client, admin_key, mock_http, monkeypatch):
    import tradetrends.services.trends as trends_mod

    async def boom(client, sources=None):
        raise RuntimeError("parser crashed")

    monkeypatch.setattr(trends_mod, "fetch_trends", boom)
    resp = await client.post("/api/refresh-trends", headers={"X-Admin-Key": admin_key})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to refresh trends", "message": "parser crashed"}
