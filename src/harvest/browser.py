"""
Headless browser bootstrap.

Used when plain HTTP is blocked: a real browser rides out the challenge page,
then hands its cookies, user agent and the site's build id back to the
SessionState so later HTTP requests look like the same visitor.

Launches are expensive, so they are counted against a per-run budget and
serialized (one browser at a time).
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import List, Literal, Optional

from playwright.async_api import async_playwright
from pydantic import BaseModel, Field

from harvest.block_detector import is_blocked
from harvest.constants import (
    BLOCKED_RESOURCE_HOSTS,
    BLOCKED_RESOURCE_TYPES,
    BOOTSTRAP_POLL_INTERVAL_MS,
    BOOTSTRAP_SETTLE_MS,
    DEFAULT_BOOTSTRAP_BUDGET,
    DEFAULT_BOOTSTRAP_TIMEOUT_MS,
    DESKTOP_VIEWPORT_HEIGHT,
    DESKTOP_VIEWPORT_WIDTH,
    NAVIGATION_TIMEOUT_MS,
    VIEWPORT_HEIGHT_JITTER,
    VIEWPORT_WIDTH_JITTER,
)
from harvest.exceptions import BootstrapBudgetExhausted, BootstrapError
from harvest.extraction.next_data import extract_build_id
from harvest.models import RunStats
from harvest.proxy import ProxyPool
from harvest.session import SessionState, random_user_agent

logger = logging.getLogger(__name__)

STEALTH_SCRIPT = """
    Object.defineProperty(navigator, 'webdriver', {
        get: () => undefined
    });
"""


class BootstrapConfig(BaseModel):
    """Launch configuration for bootstrap browsers."""

    browser_type: Literal["chromium", "firefox", "webkit"] = Field(
        default="firefox",
        description="Browser engine to launch"
    )

    headless: bool = Field(
        default=True,
        description="Run browser in headless mode (no visible UI)"
    )

    hard_timeout_ms: int = Field(
        default=DEFAULT_BOOTSTRAP_TIMEOUT_MS,
        description="Maximum time spent waiting for the block to clear",
        ge=1000,
        le=600000
    )

    navigation_timeout_ms: int = Field(
        default=NAVIGATION_TIMEOUT_MS,
        description="Page navigation timeout in milliseconds",
        ge=1000,
        le=300000
    )

    settle_ms: int = Field(
        default=BOOTSTRAP_SETTLE_MS,
        description="Pause after navigation before the first block check",
        ge=0
    )

    poll_interval_ms: int = Field(
        default=BOOTSTRAP_POLL_INTERVAL_MS,
        description="Interval between block checks",
        ge=100
    )

    locale: str = Field(
        default="en-US",
        description="Browser locale"
    )

    launch_args: List[str] = Field(
        default_factory=lambda: ["--no-sandbox", "--disable-dev-shm-usage", "--disable-gpu", "--disable-extensions"],
        description="Additional browser launch arguments"
    )

    block_resource_types: List[str] = Field(
        default_factory=lambda: sorted(BLOCKED_RESOURCE_TYPES),
        description="Resource types to abort"
    )

    block_hosts: List[str] = Field(
        default_factory=lambda: list(BLOCKED_RESOURCE_HOSTS),
        description="URL fragments of analytics/ad hosts to abort"
    )


@dataclass
class BootstrapResult:
    """What a bootstrap produced."""
    html: str
    build_id: Optional[str]
    cookie_count: int
    url: str


def random_viewport() -> dict:
    """Desktop viewport with a little jitter."""
    return {
        "width": DESKTOP_VIEWPORT_WIDTH + random.randint(-VIEWPORT_WIDTH_JITTER, VIEWPORT_WIDTH_JITTER),
        "height": DESKTOP_VIEWPORT_HEIGHT + random.randint(-VIEWPORT_HEIGHT_JITTER, VIEWPORT_HEIGHT_JITTER),
    }


class BrowserBootstrap:
    """Budgeted, serialized headless browser launches sharing the run's session."""

    def __init__(
        self,
        session: SessionState,
        proxy_pool: Optional[ProxyPool] = None,
        config: Optional[BootstrapConfig] = None,
        budget: int = DEFAULT_BOOTSTRAP_BUDGET,
        stats: Optional[RunStats] = None,
    ):
        self.session = session
        self.proxy_pool = proxy_pool
        self.config = config or BootstrapConfig()
        self.budget = max(0, budget)
        self.stats = stats if stats is not None else RunStats()
        self.launches = 0
        self._semaphore = asyncio.Semaphore(1)

        logger.debug(f"BrowserBootstrap initialized (budget={self.budget}, browser={self.config.browser_type})")

    def can_launch(self) -> bool:
        """Whether launches remain in this run's budget."""
        return self.launches < self.budget

    def _should_block(self, resource_type: str, url: str) -> bool:
        if resource_type in self.config.block_resource_types:
            return True
        return any(host in url for host in self.config.block_hosts)

    async def _handle_route(self, route) -> None:
        request = route.request
        if self._should_block(request.resource_type, request.url):
            await route.abort()
        else:
            await route.continue_()

    async def bootstrap(self, url: str, timeout_ms: Optional[int] = None) -> BootstrapResult:
        """
        Load a page in a real browser and adopt its identity.

        Args:
            url: Page to load
            timeout_ms: Hard limit on waiting for the block to clear

        Returns:
            BootstrapResult with the final HTML (best effort on timeout)

        Raises:
            BootstrapBudgetExhausted: If the run's launch budget is spent
            BootstrapError: If the browser cannot launch or navigate
        """
        async with self._semaphore:
            if not self.can_launch():
                raise BootstrapBudgetExhausted(f"Bootstrap budget of {self.budget} exhausted")
            self.launches += 1
            self.stats.bootstraps += 1
            return await self._run(url, timeout_ms or self.config.hard_timeout_ms)

    async def _run(self, url: str, hard_timeout_ms: int) -> BootstrapResult:
        proxy = None
        if self.proxy_pool is not None:
            lease = await self.proxy_pool.lease_for_session(self.session.session_id)
            proxy = lease.playwright_proxy if lease else None

        logger.info(f"Bootstrapping {url} with {self.config.browser_type} (headless={self.config.headless})")
        start = time.monotonic()
        playwright = None
        browser = None

        try:
            playwright = await async_playwright().start()
            browser_launcher = getattr(playwright, self.config.browser_type)

            launch_options = {"headless": self.config.headless, "args": self.config.launch_args}
            if proxy:
                launch_options["proxy"] = proxy
            browser = await browser_launcher.launch(**launch_options)

            context = await browser.new_context(
                viewport=random_viewport(),
                user_agent=random_user_agent(),
                locale=self.config.locale,
            )
            await context.add_init_script(STEALTH_SCRIPT)

            page = await context.new_page()
            await page.route("**/*", self._handle_route)

            await page.goto(url, wait_until="domcontentloaded", timeout=self.config.navigation_timeout_ms)
            await page.wait_for_timeout(self.config.settle_ms)

            while (time.monotonic() - start) * 1000 < hard_timeout_ms:
                content = await page.content()
                if not is_blocked(200, content):
                    break
                await page.wait_for_timeout(self.config.poll_interval_ms)
            else:
                logger.warning(f"Bootstrap timed out waiting for {url} to unblock, using last content")

            cookies = await context.cookies()
            live_user_agent = await page.evaluate("() => navigator.userAgent")
            html = await page.content()

        except Exception as e:
            error_msg = str(e) if str(e) else type(e).__name__
            logger.warning(f"Bootstrap failed for {url}: {error_msg}")
            raise BootstrapError(f"Bootstrap failed for {url}: {error_msg}") from e

        finally:
            if browser is not None:
                await browser.close()
            if playwright is not None:
                await playwright.stop()

        build_id = extract_build_id(html)
        async with self.session.lock:
            self.session.set_cookies(cookies)
            if live_user_agent:
                self.session.user_agent = live_user_agent
            self.session.update_build_id(build_id)
            build_id = self.session.build_id

        logger.info(f"Bootstrap complete: cookies={len(cookies)} build_id={build_id or 'n/a'}")
        return BootstrapResult(html=html, build_id=build_id, cookie_count=len(cookies), url=url)
