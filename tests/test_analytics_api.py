"""HTTP tests for the click beacon and analytics endpoints."""
from __future__ import annotations

import pytest

from tradetrends.api.analytics import parse_days
from tradetrends.services.analytics import SUMMARY_KEY


class TestParseDays:
    def test_default(self):
        assert parse_days(None) == 7
        assert parse_days("abc") == 7
        assert parse_days("") == 7

    def test_clamped(self):
        assert parse_days("0") == 1
        assert parse_days("-5") == 1
        assert parse_days("500") == 90
        assert parse_days(" 30 ") == 30


# ── /api/click ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_click_beacon_records(client, store):
    resp = await client.get("/api/click", params={"network": "travel", "id": "trv-hawaii"})
    assert resp.status_code == 204
    assert resp.headers["access-control-allow-origin"] == "*"
    assert resp.content == b""
    summary = await store.get(SUMMARY_KEY)
    assert summary["clicksByNetwork"] == {"travel": 1}


@pytest.mark.asyncio
async def test_click_beacon_invalid_input_is_silent(client, store):
    for params in ({}, {"network": "amazon"}, {"id": "x"}, {"network": "ebay", "id": "x"}):
        resp = await client.get("/api/click", params=params)
        assert resp.status_code == 204
    assert await store.get(SUMMARY_KEY) is None


@pytest.mark.asyncio
async def test_click_beacon_swallows_errors(client, monkeypatch):
    async def boom(*args, **kwargs):
        raise RuntimeError("storage on fire")

    monkeypatch.setattr("tradetrends.api.analytics.analytics.record_click", boom)
    resp = await client.get("/api/click", params={"network": "amazon", "id": "amz-echo"})
    assert resp.status_code == 204


@pytest.mark.asyncio
async def test_click_beacon_respects_rate_limit(client, store, clock):
    for _ in range(35):
        resp = await client.get("/api/click", params={"network": "amazon", "id": "amz-echo"})
        assert resp.status_code == 204
        clock.advance(1)
    assert (await store.get(SUMMARY_KEY))["totalClicks"] == 30


# ── /api/analytics ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_analytics_empty(client):
    resp = await client.get("/api/analytics")
    assert resp.status_code == 200
    data = resp.json()
    assert data["days"] == 7
    assert data["totalClicks"] == 0
    assert data["initialized"] is False


@pytest.mark.asyncio
async def test_analytics_days_clamped(client):
    assert (await client.get("/api/analytics", params={"days": "365"})).json()["days"] == 90
    assert (await client.get("/api/analytics", params={"days": "0"})).json()["days"] == 1
    assert (await client.get("/api/analytics", params={"days": "soon"})).json()["days"] == 7


@pytest.mark.asyncio
async def test_analytics_counts_recent_clicks(client, clock):
    await client.get("/go", params={"id": "amz-echo"})
    client.cookies.clear()
    await client.get("/go", params={"id": "trv-hawaii"})
    clock.advance(8 * 86_400)

    week = (await client.get("/api/analytics", params={"days": "7"})).json()
    assert week["totalClicks"] == 0

    month = (await client.get("/api/analytics", params={"days": "30"})).json()
    assert month["totalClicks"] == 2
    assert month["byNetwork"] == {"amazon": 1, "travel": 1}
    assert month["initialized"] is True
    assert month["byDay"] == [{"date": "2025-10-09", "clicks": 2}]


@pytest.mark.asyncio
async def test_summary_endpoint(client):
    await client.get("/go", params={"id": "amz-echo"})
    data = (await client.get("/api/analytics/summary")).json()
    assert data["initialized"] is True
    assert data["totalClicks"] == 1
    assert data["topDeals"] == [{"id": "amz-echo", "clicks": 1}]
    assert data["clicksByDay"][0]["date"] == "2025-10-09"
