"""Tests for request ID, security header and metrics middleware."""
from __future__ import annotations

import pytest

from tradetrends.middleware.metrics import metrics


# ── Request ID ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_response_includes_request_id(client):
    resp = await client.get("/health")
    assert len(resp.headers["x-request-id"]) == 36  # UUID format


@pytest.mark.asyncio
async def test_client_request_id_honored(client):
    resp = await client.get("/health", headers={"X-Request-ID": "my-trace-12345"})
    assert resp.headers["x-request-id"] == "my-trace-12345"


@pytest.mark.asyncio
async def test_long_request_id_truncated(client):
    resp = await client.get("/health", headers={"X-Request-ID": "a" * 500})
    assert resp.headers["x-request-id"] == "a" * 128


@pytest.mark.asyncio
async def test_unique_ids_per_request(client):
    r1 = await client.get("/health")
    r2 = await client.get("/health")
    assert r1.headers["x-request-id"] != r2.headers["x-request-id"]


# ── Security headers ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_security_headers_present(client):
    resp = await client.get("/health")
    assert resp.headers["x-content-type-options"] == "nosniff"
    assert resp.headers["x-frame-options"] == "DENY"
    assert "strict-origin" in resp.headers["referrer-policy"]
    assert "max-age=31536000" in resp.headers["strict-transport-security"]


@pytest.mark.asyncio
async def test_tracking_routes_never_cached(client):
    for path in ("/go", "/api/analytics", "/api/trends"):
        resp = await client.get(path)
        assert "no-store" in resp.headers["cache-control"]
        assert resp.headers["pragma"] == "no-cache"


@pytest.mark.asyncio
async def test_health_not_forced_uncached(client):
    resp = await client.get("/health")
    assert "pragma" not in resp.headers


# ── Metrics ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_metrics_endpoint_prometheus_format(client):
    await client.get("/health")
    resp = await client.get("/metrics")
    assert resp.status_code == 200
    assert "text/plain" in resp.headers["content-type"]
    body = resp.text
    assert 'tradetrends_http_requests_total{method="GET",path="/health",status="200"} 1' in body
    assert "tradetrends_uptime_seconds" in body
    assert "tradetrends_click_write_failures_total 0" in body


def test_click_write_failures_counted():
    metrics.reset()
    metrics.record_redirect("EMIT_REDIRECT", click_recorded=False)
    metrics.record_redirect("EMIT_REDIRECT", click_recorded=True)
    metrics.record_redirect("EMIT_HOME_REDIRECT")
    body = metrics.render()
    assert 'tradetrends_go_outcomes_total{state="EMIT_REDIRECT"} 2' in body
    assert "tradetrends_click_write_failures_total 1" in body
    metrics.reset()


# ── Health / errors ─────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_health(client):
    data = (await client.get("/health")).json()
    assert data["status"] == "ok"
    assert data["storage"] == "FileStore"


@pytest.mark.asyncio
async def test_ready(client):
    resp = await client.get("/ready")
    assert resp.status_code == 200
    assert resp.json() == {"ready": True}


@pytest.mark.asyncio
async def test_validation_error_envelope(client):
    resp = await client.get("/api/incidents", params={"limit": "lots"})
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"
