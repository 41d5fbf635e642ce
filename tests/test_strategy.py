"""Tests for the tiered fetch strategy."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from harvest.browser import BootstrapResult, BrowserBootstrap
from harvest.exceptions import BootstrapError
from harvest.models import Channel, FetchTarget, TargetKind
from harvest.session import SessionState
from harvest.strategy import TieredFetcher, TierState, next_state
from harvest.transport import Transport

BASE = "https://www.vitals.com"
DETAIL_URL = f"{BASE}/doctors/Dr_Jane_Roe.html"
DATA_URL = f"{BASE}/_next/data/b1/doctors/Dr_Jane_Roe.html.json"

PROVIDER = {"name": "Dr. Jane Roe", "phone": "(555) 010-0100", "specialty": "Cardiology"}

NEXT_DATA_HTML = (
    '<html><head><script id="__NEXT_DATA__" type="application/json">'
    + json.dumps({"buildId": "b1", "props": {"pageProps": {"provider": PROVIDER}}})
    + "</script></head><body><h1>Dr. Jane Roe</h1></body></html>"
)
PLAIN_HTML = "<html><body><h1>Dr. Jane Roe</h1><a href='tel:5550100'>(555) 010-0100</a></body></html>"
BLOCK_PAGE = "<html><title>Attention Required! | Cloudflare</title></html>"


def make_fetcher(routes, session=None, bootstrap=None, **kwargs):
    """Fetcher over a routed MockTransport; returns it with the list of requested URLs."""
    requested = []

    def handler(request):
        url = str(request.url)
        requested.append(url)
        status, body = routes.get(url, (404, "not found"))
        return httpx.Response(status, text=body)

    def client_factory(proxy_url, timeout):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    transport = Transport(session or SessionState.load(None), client_factory=client_factory, sleep=AsyncMock())
    fetcher = TieredFetcher(transport, bootstrap=bootstrap, base_url=BASE, max_retries=2, **kwargs)
    return fetcher, requested


def fake_bootstrap(html, session=None, build_id=None, can_launch=True):
    """Bootstrap stand-in that optionally adopts a build id like the real one."""
    bootstrap = MagicMock()
    bootstrap.can_launch.return_value = can_launch

    async def run(url, timeout_ms=None):
        if session is not None and build_id:
            session.update_build_id(build_id)
        return BootstrapResult(html=html, build_id=build_id, cookie_count=0, url=url)

    bootstrap.bootstrap = AsyncMock(side_effect=run)
    return bootstrap


def detail(url=DETAIL_URL):
    return FetchTarget(url=url, kind=TargetKind.DETAIL)


class TestNextState:
    """Tests for the pure transition function."""

    @pytest.mark.parametrize("state,has_build_id,found,browser,expected", [
        (TierState.NEED_BUILD_ID, True, False, True, TierState.TRY_DATA_ENDPOINT),
        (TierState.NEED_BUILD_ID, False, False, True, TierState.TRY_DOCUMENT),
        (TierState.TRY_DATA_ENDPOINT, True, True, True, TierState.DONE),
        (TierState.TRY_DATA_ENDPOINT, True, False, True, TierState.TRY_DOCUMENT),
        (TierState.TRY_DOCUMENT, True, True, False, TierState.DONE),
        (TierState.TRY_DOCUMENT, True, False, True, TierState.TRY_BROWSER),
        (TierState.TRY_DOCUMENT, True, False, False, TierState.FAILED),
        (TierState.TRY_BROWSER, True, True, True, TierState.DONE),
        (TierState.TRY_BROWSER, True, False, True, TierState.FAILED),
        (TierState.DONE, False, False, False, TierState.DONE),
        (TierState.FAILED, True, True, True, TierState.FAILED),
    ])
    def test_transitions(self, state, has_build_id, found, browser, expected):
        assert next_state(state, has_build_id=has_build_id, found=found, browser_available=browser) == expected

    def test_terminal_states(self):
        assert TierState.DONE.is_terminal
        assert TierState.FAILED.is_terminal
        assert not TierState.TRY_BROWSER.is_terminal


class TestTieredFetcher:
    """Tests for TieredFetcher.fetch."""

    @pytest.mark.asyncio
    async def test_warm_session_uses_data_endpoint(self):
        session = SessionState.load({"build_id": "b1"})
        fetcher, requested = make_fetcher(
            {DATA_URL: (200, json.dumps({"pageProps": {"provider": PROVIDER}}))}, session=session
        )

        outcome = await fetcher.fetch(detail())

        assert outcome.found
        assert outcome.channel == Channel.DATA_ENDPOINT
        assert requested == [DATA_URL]
        assert outcome.trail == [TierState.NEED_BUILD_ID, TierState.TRY_DATA_ENDPOINT, TierState.DONE]
        assert fetcher.stats.data_endpoint_hits == 1

    @pytest.mark.asyncio
    async def test_cold_session_probes_document_first(self):
        fetcher, requested = make_fetcher({DETAIL_URL: (200, NEXT_DATA_HTML)})

        outcome = await fetcher.fetch(detail())

        assert requested[0] == DETAIL_URL
        assert fetcher.session.build_id == "b1"
        assert outcome.found
        assert outcome.channel == Channel.DOCUMENT
        # The probe response is reused by the document tier
        assert requested == [DETAIL_URL, DATA_URL]
        assert outcome.trail == [
            TierState.NEED_BUILD_ID,
            TierState.TRY_DATA_ENDPOINT,
            TierState.TRY_DOCUMENT,
            TierState.DONE,
        ]

    @pytest.mark.asyncio
    async def test_no_data_call_without_build_id(self):
        fetcher, requested = make_fetcher({DETAIL_URL: (200, PLAIN_HTML)})

        outcome = await fetcher.fetch(detail())

        assert outcome.found
        assert outcome.channel == Channel.DOCUMENT
        assert not any("/_next/data/" in url for url in requested)
        assert TierState.TRY_DATA_ENDPOINT not in outcome.trail

    @pytest.mark.asyncio
    async def test_fails_without_browser_budget(self):
        session = SessionState.load({"build_id": "b1"})
        bootstrap = BrowserBootstrap(session, budget=0)
        fetcher, _ = make_fetcher(
            {DATA_URL: (403, BLOCK_PAGE), DETAIL_URL: (403, BLOCK_PAGE)},
            session=session,
            bootstrap=bootstrap,
        )

        with patch("harvest.browser.async_playwright") as mock_playwright:
            outcome = await fetcher.fetch(detail())

        assert outcome.state == TierState.FAILED
        assert not outcome.found
        assert outcome.trail == [
            TierState.NEED_BUILD_ID,
            TierState.TRY_DATA_ENDPOINT,
            TierState.TRY_DOCUMENT,
            TierState.FAILED,
        ]
        assert bootstrap.launches == 0
        mock_playwright.assert_not_called()
        assert any(e.startswith("try_data_endpoint:") for e in outcome.errors)
        assert any(e.startswith("try_document:") for e in outcome.errors)

    @pytest.mark.asyncio
    async def test_browser_tier_after_http_failure(self):
        session = SessionState.load({"build_id": "b1"})
        bootstrap = fake_bootstrap(PLAIN_HTML)
        fetcher, _ = make_fetcher(
            {DATA_URL: (403, BLOCK_PAGE), DETAIL_URL: (403, BLOCK_PAGE)},
            session=session,
            bootstrap=bootstrap,
            browser_timeout_ms=1234,
        )

        outcome = await fetcher.fetch(detail())

        assert outcome.found
        assert outcome.channel == Channel.BROWSER
        bootstrap.bootstrap.assert_awaited_once_with(DETAIL_URL, timeout_ms=1234)
        assert fetcher.stats.browser_hits == 1

    @pytest.mark.asyncio
    async def test_bootstrap_for_build_id_then_reuses_html(self):
        session = SessionState.load(None)
        bootstrap = fake_bootstrap(NEXT_DATA_HTML, session=session, build_id="b1")
        fetcher, requested = make_fetcher(
            {DATA_URL: (403, BLOCK_PAGE), DETAIL_URL: (403, BLOCK_PAGE)},
            session=session,
            bootstrap=bootstrap,
        )

        outcome = await fetcher.fetch(detail())

        assert outcome.found
        assert outcome.channel == Channel.BROWSER
        assert bootstrap.bootstrap.await_count == 1
        first_data_call = requested.index(DATA_URL)
        assert all(url == DETAIL_URL for url in requested[:first_data_call])

    @pytest.mark.asyncio
    async def test_browser_error_is_recorded(self):
        session = SessionState.load({"build_id": "b1"})
        bootstrap = fake_bootstrap(PLAIN_HTML)
        bootstrap.bootstrap = AsyncMock(side_effect=BootstrapError("launch failed"))
        fetcher, _ = make_fetcher(
            {DATA_URL: (403, BLOCK_PAGE), DETAIL_URL: (403, BLOCK_PAGE)},
            session=session,
            bootstrap=bootstrap,
        )

        outcome = await fetcher.fetch(detail())

        assert outcome.state == TierState.FAILED
        assert "try_browser: launch failed" in outcome.errors

    @pytest.mark.asyncio
    async def test_listing_target(self):
        listing_url = f"{BASE}/cardiologists/ny/new-york"
        html = (
            "<html><body><ul>"
            '<li><a href="/doctors/Dr_A.html">Dr. Alpha</a></li>'
            '<li><a href="/doctors/Dr_B.html">Dr. Bravo</a></li>'
            "</ul></body></html>"
        )
        fetcher, _ = make_fetcher({listing_url: (200, html)})

        outcome = await fetcher.fetch(FetchTarget(url=listing_url, kind=TargetKind.LISTING))

        assert outcome.found
        assert len(outcome.candidates) == 2

    @pytest.mark.asyncio
    async def test_error_page_is_a_failed_tier(self):
        fetcher, _ = make_fetcher({DETAIL_URL: (404, "<html><body><h1>Page Not Found</h1></body></html>")})

        outcome = await fetcher.fetch(detail())

        assert outcome.state == TierState.FAILED
        assert not outcome.found
        assert any(e.startswith("try_document: HTTP 404") for e in outcome.errors)

    @pytest.mark.asyncio
    async def test_server_error_from_data_endpoint_falls_through(self):
        session = SessionState.load({"build_id": "b1"})
        fetcher, requested = make_fetcher(
            {
                DATA_URL: (500, json.dumps({"pageProps": {"provider": {"name": "Dr. Stale Cache"}}})),
                DETAIL_URL: (200, PLAIN_HTML),
            },
            session=session,
        )

        outcome = await fetcher.fetch(detail())

        assert outcome.found
        assert outcome.channel == Channel.DOCUMENT
        assert requested == [DATA_URL, DETAIL_URL]
        assert any(e.startswith("try_data_endpoint: HTTP 500") for e in outcome.errors)
        assert fetcher.stats.data_endpoint_hits == 0
