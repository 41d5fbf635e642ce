"""
HTTP transport with session identity, block detection and retry.

Every request carries the run's SessionState (cookies, user agent) and goes
out through a proxy keyed by the current session id. Blocked responses and
network errors are retried with a randomized pause, rotating the session
according to the configured RotationPolicy.

Usage:
    transport = Transport(state, proxy_pool=pool, stats=stats)
    response = await transport.fetch(url)
    payload = await transport.fetch(data_url, kind=ResponseKind.DATA)
"""

import asyncio
import logging
import math
import random
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

import httpx

from harvest.block_detector import detect_block_signal
from harvest.constants import (
    DATA_ACCEPT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DOCUMENT_ACCEPT,
    RETRY_DELAY_MAX_SECONDS,
    RETRY_DELAY_MIN_SECONDS,
)
from harvest.exceptions import BlockedError, HarvestError, TransportError
from harvest.models import Channel, RawResponse, RunStats
from harvest.proxy import ProxyLease, ProxyPool
from harvest.session import SessionState

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Optional[str], float], httpx.AsyncClient]


class ResponseKind(str, Enum):
    """Expected response body kind."""
    DOCUMENT = "document"  # HTML page
    DATA = "data"  # JSON data endpoint


class RotationPolicy(str, Enum):
    """When a failed attempt rotates the session."""
    ALWAYS = "always"  # After every failed attempt
    MIDPOINT = "midpoint"  # Once, at attempt ceil(max_retries / 2)


def default_client_factory(proxy_url: Optional[str], timeout: float) -> httpx.AsyncClient:
    """Create an httpx client for one attempt."""
    return httpx.AsyncClient(timeout=timeout, follow_redirects=True, proxy=proxy_url)


class Transport:
    """Session-aware fetcher with retry and rotation."""

    def __init__(
        self,
        session: SessionState,
        proxy_pool: Optional[ProxyPool] = None,
        stats: Optional[RunStats] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        retry_delay_min: float = RETRY_DELAY_MIN_SECONDS,
        retry_delay_max: float = RETRY_DELAY_MAX_SECONDS,
        rotation_policy: RotationPolicy = RotationPolicy.MIDPOINT,
        client_factory: Optional[ClientFactory] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session = session
        self.proxy_pool = proxy_pool
        self.stats = stats if stats is not None else RunStats()
        self.timeout = timeout
        self.retry_delay_min = retry_delay_min
        self.retry_delay_max = retry_delay_max
        self.rotation_policy = rotation_policy
        self._client_factory = client_factory or default_client_factory
        self._sleep = sleep

    def build_headers(self, kind: ResponseKind, headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Compose baseline browser headers, session identity, then caller headers."""
        merged = {
            "accept": DATA_ACCEPT if kind == ResponseKind.DATA else DOCUMENT_ACCEPT,
            "accept-language": "en-US,en;q=0.9",
            "cache-control": "no-cache",
            "pragma": "no-cache",
            "user-agent": self.session.user_agent,
        }
        cookie = self.session.cookie_header()
        if cookie:
            merged["cookie"] = cookie
        if headers:
            merged.update(headers)
        return merged

    async def acquire_proxy(self) -> Optional[ProxyLease]:
        """Get a proxy keyed by the current session, or any proxy if that fails."""
        if self.proxy_pool is None:
            return None
        return await self.proxy_pool.lease_for_session(self.session.session_id)

    def _should_rotate(self, attempt: int, max_retries: int) -> bool:
        if self.rotation_policy == RotationPolicy.ALWAYS:
            return True
        return attempt == math.ceil(max_retries / 2)

    async def _rotate(self) -> None:
        """Switch identity and release the old session's proxy assignment."""
        async with self.session.lock:
            old_id = self.session.session_id
            self.session.rotate()
        if self.proxy_pool is not None:
            await self.proxy_pool.release_session(old_id)

    async def _after_failure(self, attempt: int, max_retries: int) -> bool:
        """Rotate if the policy says so, then pause before the next attempt.

        Returns:
            True if the session was rotated
        """
        rotated = self._should_rotate(attempt, max_retries)
        if rotated:
            await self._rotate()
        if attempt < max_retries:
            await self._sleep(random.uniform(self.retry_delay_min, self.retry_delay_max))
        return rotated

    async def fetch(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        kind: ResponseKind = ResponseKind.DOCUMENT,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> RawResponse:
        """
        Fetch a URL, retrying blocks and network errors.

        Args:
            url: URL to fetch
            headers: Extra headers layered over the baseline set
            kind: DOCUMENT for HTML pages, DATA for JSON endpoints
            max_retries: Total attempts

        A blocked identity never outlives the call: if a block was seen since
        the last rotation, the session is rotated before returning or raising.

        Returns:
            The first non-blocked response

        Raises:
            BlockedError: If the last attempt was blocked
            TransportError: If the last attempt failed at the network level
        """
        max_retries = max(1, max_retries)
        channel = Channel.DATA_ENDPOINT if kind == ResponseKind.DATA else Channel.DOCUMENT
        last_error: Optional[HarvestError] = None
        block_pending = False

        for attempt in range(1, max_retries + 1):
            lease = await self.acquire_proxy()
            request_headers = self.build_headers(kind, headers)

            try:
                async with self._client_factory(lease.url if lease else None, self.timeout) as client:
                    response = await client.get(url, headers=request_headers)
            except httpx.HTTPError as e:
                error_msg = str(e) or type(e).__name__
                logger.debug(f"Attempt {attempt}/{max_retries} failed for {url}: {error_msg}")
                last_error = TransportError(f"Request failed for {url}: {error_msg}")
                if self.proxy_pool is not None:
                    await self.proxy_pool.record_result(lease, success=False)
                if await self._after_failure(attempt, max_retries):
                    block_pending = False
                continue

            set_cookies = response.headers.get_list("set-cookie")
            body = response.text
            signal = detect_block_signal(response.status_code, body)
            if signal:
                async with self.session.lock:
                    self.session.merge_cookies(set_cookies)
                self.stats.blocked += 1
                logger.debug(f"Attempt {attempt}/{max_retries} blocked for {url} ({signal})")
                last_error = BlockedError(
                    f"Blocked ({response.status_code}) at {url}",
                    status_code=response.status_code,
                    signal=signal,
                )
                if self.proxy_pool is not None:
                    await self.proxy_pool.record_result(lease, success=False, is_block=True)
                block_pending = not await self._after_failure(attempt, max_retries)
                continue

            if block_pending:
                await self._rotate()
            async with self.session.lock:
                self.session.merge_cookies(set_cookies)

            if self.proxy_pool is not None:
                await self.proxy_pool.record_result(lease, success=True)

            return RawResponse(
                status_code=response.status_code,
                body=body,
                channel=channel,
                url=str(response.url),
                headers=dict(response.headers),
            )

        if block_pending:
            await self._rotate()
        logger.warning(f"Giving up on {url} after {max_retries} attempts: {last_error}")
        raise last_error
