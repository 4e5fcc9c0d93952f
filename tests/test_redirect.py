"""Tests for destination resolution and self-redirect protection."""
from __future__ import annotations

import pytest

from tradetrends.services.catalog import DealCatalog
from tradetrends.services.redirect import Outcome, RedirectResolver, hostname_of

from conftest import ECHO_URL, HAWAII_URL


@pytest.fixture
def resolver(catalog):
    return RedirectResolver(
        catalog,
        forbidden_hosts=["tradetrend.netlify.app", "localhost"],
        direct_allowed_hosts=["amazon.com", "booking.com"],
    )


class TestHostnameOf:
    def test_absolute(self):
        assert hostname_of("https://WWW.Amazon.com/dp/X") == "www.amazon.com"

    def test_relative_is_empty(self):
        assert hostname_of("/deals/echo") == ""

    def test_unparseable_is_none(self):
        assert hostname_of("http://[::1") is None


class TestCheckDestination:
    def test_external_allowed(self, resolver):
        assert resolver.check_destination(ECHO_URL) == Outcome.ALLOW

    def test_own_site_blocked(self, resolver):
        assert resolver.check_destination("https://tradetrend.netlify.app/go?id=x") == Outcome.SELF_REDIRECT

    def test_subdomain_of_forbidden_blocked(self, resolver):
        assert resolver.check_destination("https://preview.tradetrend.netlify.app/") == Outcome.SELF_REDIRECT

    def test_loopback_always_blocked(self, resolver):
        assert resolver.check_destination("http://127.0.0.5:8000/") == Outcome.SELF_REDIRECT
        assert resolver.check_destination("http://0.0.0.0/") == Outcome.SELF_REDIRECT
        assert resolver.check_destination("http://localhost:3000/") == Outcome.SELF_REDIRECT

    def test_relative_url_blocked(self, resolver):
        assert resolver.check_destination("/deals") == Outcome.SELF_REDIRECT

    def test_request_host_blocked(self, resolver):
        assert resolver.check_destination("https://api.example.org/x", ["api.example.org"]) == Outcome.SELF_REDIRECT

    def test_unparseable_passes_through(self, resolver):
        assert resolver.check_destination("http://[::1") == Outcome.ALLOW

    def test_backslash_userinfo_trick_blocked(self, resolver):
        # Browsers read the backslash as a path separator and land on our own host
        url = "https://tradetrend.netlify.app\\@www.amazon.com/dp/X"
        assert hostname_of(url) == "www.amazon.com"
        assert resolver.check_destination(url) == Outcome.SELF_REDIRECT

    def test_embedded_whitespace_blocked(self, resolver):
        assert resolver.check_destination("https://www.amazon.com/dp/X\tY") == Outcome.SELF_REDIRECT
        assert resolver.check_destination("https://www.amazon.com/dp X") == Outcome.SELF_REDIRECT

    def test_site_url_host_always_forbidden(self, catalog, monkeypatch):
        from config.settings import settings
        monkeypatch.setattr(settings, "SITE_URL", "https://deals.example.net")
        resolver = RedirectResolver(catalog, forbidden_hosts=[])
        assert resolver.check_destination("https://deals.example.net/x") == Outcome.SELF_REDIRECT


class TestResolve:
    @pytest.mark.asyncio
    async def test_published_deal(self, resolver):
        res = await resolver.resolve("amz-echo")
        assert res.outcome == Outcome.ALLOW
        assert res.destination == ECHO_URL
        assert res.deal.id == "amz-echo"

    @pytest.mark.asyncio
    async def test_legacy_travel_deal(self, resolver):
        res = await resolver.resolve("trv-hawaii")
        assert res.outcome == Outcome.ALLOW
        assert res.destination == HAWAII_URL

    @pytest.mark.asyncio
    async def test_unknown_deal(self, resolver):
        assert (await resolver.resolve("nope")).outcome == Outcome.NOT_FOUND

    @pytest.mark.asyncio
    async def test_draft_not_redirectable(self, resolver):
        assert (await resolver.resolve("amz-draft")).outcome == Outcome.NOT_FOUND

    @pytest.mark.asyncio
    async def test_empty_url_not_redirectable(self, resolver):
        assert (await resolver.resolve("amz-empty")).outcome == Outcome.NOT_FOUND

    @pytest.mark.asyncio
    async def test_self_redirect_deal(self, resolver):
        res = await resolver.resolve("amz-self")
        assert res.outcome == Outcome.SELF_REDIRECT
        assert res.destination == "https://tradetrend.netlify.app/deals/echo"

    @pytest.mark.asyncio
    async def test_store_catalog_takes_precedence(self, data_dir):
        from tradetrends.storage import MemoryStore
        store = MemoryStore({"deals-amazon": {"items": [
            {"id": "amz-echo", "affiliate_url": "https://www.amazon.com/dp/STORE00001"},
        ]}})
        resolver = RedirectResolver(DealCatalog(store, data_dir=data_dir), forbidden_hosts=[])
        res = await resolver.resolve("amz-echo")
        assert res.destination == "https://www.amazon.com/dp/STORE00001"


class TestDirectUrl:
    def test_allow_listed_host(self, resolver):
        assert resolver.check_direct_url(ECHO_URL) == ECHO_URL

    def test_missing(self, resolver):
        assert resolver.check_direct_url(None) is None
        assert resolver.check_direct_url("") is None

    def test_non_http_scheme(self, resolver):
        assert resolver.check_direct_url("javascript:alert(1)") is None
        assert resolver.check_direct_url("ftp://amazon.com/x") is None

    def test_not_allow_listed(self, resolver):
        assert resolver.check_direct_url("https://evil.example.com/phish") is None

    def test_lookalike_host_rejected(self, resolver):
        assert resolver.check_direct_url("https://amazon.com.evil.io/x") is None

    def test_forbidden_host_rejected(self, resolver):
        assert resolver.check_direct_url("https://tradetrend.netlify.app/") is None

    def test_backslash_host_confusion_rejected(self, resolver):
        assert resolver.check_direct_url("https://evil.example.com\\@www.amazon.com/dp/X") is None
        assert resolver.check_direct_url("https://www.amazon.com\\\\evil.example.com/") is None

    def test_control_characters_rejected(self, resolver):
        assert resolver.check_direct_url("https://www.amazon.com/dp/X\nSet-Cookie: a=b") is None

    def test_surrounding_whitespace_trimmed(self, resolver):
        assert resolver.check_direct_url(f"  {ECHO_URL} ") == ECHO_URL
