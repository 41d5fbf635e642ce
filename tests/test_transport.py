"""Tests for the HTTP transport, using httpx.MockTransport (no network)."""

from unittest.mock import AsyncMock

import httpx
import pytest

from harvest.exceptions import BlockedError, TransportError
from harvest.models import Channel, RunStats
from harvest.proxy import ProxyPool
from harvest.session import SessionState
from harvest.transport import ResponseKind, RotationPolicy, Transport

URL = "https://www.vitals.com/cardiologists/ny/new-york"


def make_transport(handler, session=None, **kwargs):
    """Transport whose clients route every request to handler."""
    proxies_seen = []

    def client_factory(proxy_url, timeout):
        proxies_seen.append(proxy_url)
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)

    transport = Transport(
        session or SessionState.load(None),
        client_factory=client_factory,
        sleep=AsyncMock(),
        **kwargs
    )
    transport.proxies_seen = proxies_seen
    return transport


class TestHeaders:
    """Tests for header composition."""

    def test_no_cookie_header_with_empty_jar(self):
        transport = Transport(SessionState.load(None))
        headers = transport.build_headers(ResponseKind.DOCUMENT)

        assert "cookie" not in headers
        assert headers["user-agent"] == transport.session.user_agent
        assert headers["accept"].startswith("text/html")

    def test_data_kind_and_caller_override(self):
        session = SessionState.load({"cookie_jar": {"a": "1"}})
        transport = Transport(session)

        headers = transport.build_headers(ResponseKind.DATA, {"x-nextjs-data": "1", "pragma": "custom"})

        assert headers["accept"].startswith("application/json")
        assert headers["cookie"] == "a=1"
        assert headers["x-nextjs-data"] == "1"
        assert headers["pragma"] == "custom"


class TestFetch:
    """Tests for Transport.fetch."""

    @pytest.mark.asyncio
    async def test_success_merges_cookies(self):
        def handler(request):
            return httpx.Response(
                200,
                headers=[("set-cookie", "a=1; Path=/"), ("set-cookie", "b=2")],
                text="<html>Dr. Smith</html>",
            )

        transport = make_transport(handler)
        response = await transport.fetch(URL)

        assert response.status_code == 200
        assert response.channel == Channel.DOCUMENT
        assert "Dr. Smith" in response.body
        assert transport.session.cookie_jar == {"a": "1", "b": "2"}

    @pytest.mark.asyncio
    async def test_data_kind_channel(self):
        transport = make_transport(lambda request: httpx.Response(200, json={"pageProps": {}}))

        response = await transport.fetch(URL + ".json", kind=ResponseKind.DATA)

        assert response.channel == Channel.DATA_ENDPOINT

    @pytest.mark.asyncio
    async def test_sends_session_cookies(self):
        seen = []

        def handler(request):
            seen.append(request.headers.get("cookie"))
            return httpx.Response(200, text="ok")

        session = SessionState.load({"cookie_jar": {"cf_clearance": "x"}})
        await make_transport(handler, session=session).fetch(URL)

        assert seen == ["cf_clearance=x"]

    @pytest.mark.asyncio
    async def test_blocked_then_success_rotates_at_midpoint(self):
        """With 3 attempts the session rotates once, after attempt 2."""
        responses = iter([
            httpx.Response(403, text="denied"),
            httpx.Response(200, text="Attention Required! | Cloudflare"),
            httpx.Response(200, text="<html>ok</html>"),
        ])
        session = SessionState.load(None)
        ids_per_attempt = []

        def handler(request):
            ids_per_attempt.append(session.session_id)
            return next(responses)

        stats = RunStats()
        transport = make_transport(handler, session=session, stats=stats)
        response = await transport.fetch(URL, max_retries=3)

        assert response.body == "<html>ok</html>"
        assert ids_per_attempt[0] == ids_per_attempt[1]
        assert ids_per_attempt[2] != ids_per_attempt[1]
        assert stats.blocked == 2
        assert transport._sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_always_policy_rotates_every_failure(self):
        session = SessionState.load(None)
        ids_per_attempt = []

        def handler(request):
            ids_per_attempt.append(session.session_id)
            return httpx.Response(429, text="slow down")

        transport = make_transport(handler, session=session, rotation_policy=RotationPolicy.ALWAYS)
        with pytest.raises(BlockedError):
            await transport.fetch(URL, max_retries=3)

        assert len(set(ids_per_attempt)) == 3

    @pytest.mark.asyncio
    async def test_exhausted_blocks_raise_blocked_error(self):
        transport = make_transport(lambda request: httpx.Response(503, text="unavailable"))

        with pytest.raises(BlockedError) as exc_info:
            await transport.fetch(URL, max_retries=2)

        assert exc_info.value.status_code == 503
        assert exc_info.value.signal == "status_503"

    @pytest.mark.asyncio
    async def test_network_errors_raise_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport = make_transport(handler)
        with pytest.raises(TransportError):
            await transport.fetch(URL, max_retries=2)

    @pytest.mark.asyncio
    async def test_blocked_cookies_sent_until_rotation(self):
        responses = iter([
            httpx.Response(403, headers={"set-cookie": "__cf_bm=abc"}, text="blocked"),
            httpx.Response(200, headers={"set-cookie": "ok=1"}, text="ok"),
        ])
        cookies_sent = []

        def handler(request):
            cookies_sent.append(request.headers.get("cookie"))
            return next(responses)

        session = SessionState.load(None)
        original_id = session.session_id
        transport = make_transport(handler, session=session)

        # max_retries=4 defers the rotation past attempt 1
        await transport.fetch(URL, max_retries=4)

        assert cookies_sent == [None, "__cf_bm=abc"]
        assert session.session_id != original_id
        assert session.cookie_jar == {"ok": "1"}

    @pytest.mark.asyncio
    async def test_exhausted_blocks_leave_fresh_identity(self):
        session = SessionState.load({"cookie_jar": {"old": "1"}})
        original_id = session.session_id
        transport = make_transport(
            lambda request: httpx.Response(403, headers={"set-cookie": "__cf_bm=tok"}, text="blocked"),
            session=session,
        )

        with pytest.raises(BlockedError):
            await transport.fetch(URL, max_retries=3)

        assert session.session_id != original_id
        assert session.cookie_jar == {}

    @pytest.mark.asyncio
    async def test_single_blocked_attempt_still_rotates(self):
        session = SessionState.load(None)
        original_id = session.session_id
        transport = make_transport(lambda request: httpx.Response(429, text="slow down"), session=session)

        with pytest.raises(BlockedError):
            await transport.fetch(URL, max_retries=1)

        assert session.session_id != original_id
        assert session.cookie_jar == {}

    @pytest.mark.asyncio
    async def test_rotation_releases_sticky_proxy_assignment(self):
        pool = ProxyPool()
        pool.add_proxy_from_url("http://u-{session}:p@a.example.com:8000")
        session = SessionState.load(None)
        seen_ids = []

        def handler(request):
            seen_ids.append(session.session_id)
            return httpx.Response(403, text="blocked")

        transport = make_transport(
            handler, session=session, proxy_pool=pool, rotation_policy=RotationPolicy.ALWAYS
        )
        for _ in range(3):
            with pytest.raises(BlockedError):
                await transport.fetch(URL, max_retries=2)

        assert len(set(seen_ids)) == 6
        assert not set(seen_ids) & set(pool._session_assignments)
        assert pool.get_stats()["sessions_assigned"] <= 1


    @pytest.mark.asyncio
    async def test_uses_session_keyed_proxy(self):
        pool = ProxyPool()
        pool.add_proxy_from_url("http://user-{session}:pw@proxy.example.com:8000")
        session = SessionState.load(None)

        transport = make_transport(lambda request: httpx.Response(200, text="ok"), session=session, proxy_pool=pool)
        await transport.fetch(URL)

        assert transport.proxies_seen == [
            f"http://user-{session.session_id}:pw@proxy.example.com:8000"
        ]
