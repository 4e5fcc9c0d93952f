"""Tests for the redirect canary, run against the app in-process."""
from __future__ import annotations

import json

import pytest

from config.settings import settings
from tradetrends.services.canary import run_canary
from tradetrends.services.catalog import DealCatalog
from tradetrends.services.incidents import INCIDENTS_KEY, IncidentSink
from tradetrends.services.redirect import RedirectResolver

from conftest import ECHO_URL, write_catalogs


@pytest.mark.asyncio
async def test_passes_on_external_redirect(client, store, catalog):
    result = await run_canary(client, catalog, RedirectResolver(catalog), IncidentSink(store))
    assert result.status == "PASS"
    assert result.passed
    assert result.redirect_status == 302
    assert result.redirect_location == ECHO_URL
    assert result.is_external is True
    assert await store.get(INCIDENTS_KEY) is None


@pytest.mark.asyncio
async def test_fails_on_self_redirect_and_flips_kill_switch(client, store, tmp_path, monkeypatch):
    flags = tmp_path / "flags.json"
    monkeypatch.setattr(settings, "EMERGENCY_FLAGS_PATH", str(flags))
    data_dir = write_catalogs(tmp_path / "broken", amazon=[
        {"id": "amz-self", "affiliate_url": "https://tradetrend.netlify.app/deals/echo"},
    ])
    broken = DealCatalog(store, data_dir=data_dir)
    from tradetrends.api import deps
    from tradetrends.api.main import app
    app.dependency_overrides[deps.get_catalog] = lambda: broken

    result = await run_canary(client, broken, RedirectResolver(broken), IncidentSink(store), kill_switch=True)
    assert result.status == "FAILED"
    assert not result.passed
    assert result.redirect_status == 200
    incidents = (await store.get(INCIDENTS_KEY))["incidents"]
    assert [i["type"] for i in incidents] == ["self_redirect", "redirect_failure"]
    assert incidents[-1]["severity"] == "CRITICAL"
    assert json.loads(flags.read_text())["emergencyFlags"]["forceDirect"] is True


@pytest.mark.asyncio
async def test_skipped_without_published_deals(client, store, tmp_path):
    empty = DealCatalog(store, data_dir=write_catalogs(tmp_path / "empty", amazon=[], travel=[]))
    result = await run_canary(client, empty, RedirectResolver(empty), IncidentSink(store))
    assert result.status == "SKIPPED"
    assert result.passed
