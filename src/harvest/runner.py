"""
One complete harvest run.

1. Load the persisted session (cookies, user agent, build id)
2. Walk the listing pages and collect profile seeds
3. Fetch profile pages through the tiered fetcher with bounded concurrency
4. Flush the session back to the store, always
5. Write and log the run summary

Usage:
    runner = HarvestRunner(HarvestConfig.from_env(), SearchInput(specialty="Dermatology"))
    summary = await runner.run()
"""

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from harvest.browser import BootstrapConfig, BrowserBootstrap
from harvest.config import HarvestConfig, SearchInput
from harvest.constants import LISTING_PAUSE_MAX_SECONDS, LISTING_PAUSE_MIN_SECONDS
from harvest.extraction.normalizer import merge_record
from harvest.models import FetchTarget, RunStats, RunSummary, TargetKind
from harvest.orchestrator import CrawlOrchestrator
from harvest.output_manager import OutputManager
from harvest.proxy import ProxyPool, create_proxy_pool
from harvest.session import SessionState
from harvest.session_store import JsonFileStore
from harvest.slugs import build_listing_url
from harvest.strategy import TieredFetcher
from harvest.transport import ClientFactory, RotationPolicy, Transport

logger = logging.getLogger(__name__)

NO_PROFILES_MESSAGE = "No profiles found. Likely blocked by Cloudflare."
NO_RESULTS_MESSAGE = "No results scraped. Likely blocked by Cloudflare."
REMEDIATION_HINT = "Try residential proxy IPs (--proxy or PROXY_URLS) and reduce concurrency."


class HarvestRunner:
    """Wires the engine together for one search and runs it."""

    def __init__(
        self,
        config: HarvestConfig,
        search: SearchInput,
        store=None,
        output: Optional[OutputManager] = None,
        proxy_pool: Optional[ProxyPool] = None,
        client_factory: Optional[ClientFactory] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            config: Engine configuration
            search: What to harvest
            store: Session store with get/put (default: JsonFileStore at config.state_dir)
            output: Output sink (default: OutputManager at config.output_dir)
            proxy_pool: Proxy provider (default: built from search input or environment)
            client_factory: httpx client factory override
            clock: Monotonic clock in seconds
            sleep: Async sleep used for pauses

        Raises:
            StoreUnavailableError: If the session store cannot be opened
            ValueError: If config.rotation_policy is not a known policy
        """
        self.config = config
        self.search = search
        self.rotation_policy = RotationPolicy(config.rotation_policy)
        self.store = store if store is not None else JsonFileStore(config.state_dir)
        self.output = output if output is not None else OutputManager(config.output_dir)
        self.proxy_pool = proxy_pool if proxy_pool is not None else create_proxy_pool(
            proxy_urls=search.proxy_urls, proxy_file=search.proxy_file
        )
        self.client_factory = client_factory
        self.stats = RunStats()
        self._clock = clock
        self._sleep = sleep

    def listing_urls(self) -> List[str]:
        """Listing pages to visit, in order."""
        if self.search.start_url:
            return [self.search.start_url]
        return [
            build_listing_url(self.search.specialty, self.search.location, page, self.config.base_url)
            for page in range(1, self.search.max_pages + 1)
        ]

    def _defaults(self) -> Dict[str, Any]:
        return {"specialty": self.search.specialty, "location": self.search.location}

    def _build_fetcher(self, state: SessionState) -> TieredFetcher:
        transport = Transport(
            state,
            proxy_pool=self.proxy_pool,
            stats=self.stats,
            timeout=self.config.request_timeout_seconds,
            retry_delay_min=self.config.retry_delay_min,
            retry_delay_max=self.config.retry_delay_max,
            rotation_policy=self.rotation_policy,
            client_factory=self.client_factory,
            sleep=self._sleep,
        )
        bootstrap = BrowserBootstrap(
            state,
            proxy_pool=self.proxy_pool,
            config=BootstrapConfig(
                browser_type=self.config.browser_type,
                headless=self.config.headless,
                hard_timeout_ms=self.config.bootstrap_timeout_ms,
            ),
            budget=self.config.bootstrap_budget,
            stats=self.stats,
        )
        return TieredFetcher(
            transport,
            bootstrap=bootstrap,
            stats=self.stats,
            base_url=self.config.base_url,
            browser_timeout_ms=self.config.browser_tier_timeout_ms,
        )

    async def collect_seeds(self, fetcher: TieredFetcher, deadline: float) -> List[Dict[str, Any]]:
        """Walk listing pages and collect unique profile seeds, up to the result cap."""
        seeds: List[Dict[str, Any]] = []
        seen_urls = set()

        for url in self.listing_urls():
            if self._clock() >= deadline or len(seeds) >= self.search.results_wanted:
                break

            self.stats.listing_pages += 1
            logger.info(f"Listing: {url}")
            outcome = await fetcher.fetch(FetchTarget(url=url, kind=TargetKind.LISTING))
            found = [c.fields for c in outcome.candidates]
            self.stats.listing_candidates += len(found)

            for seed in found:
                seed_url = seed.get("url")
                if not seed_url or seed_url in seen_urls:
                    continue
                seen_urls.add(seed_url)
                seeds.append(seed)
                if len(seeds) >= self.search.results_wanted:
                    break

            await self._sleep(random.uniform(LISTING_PAUSE_MIN_SECONDS, LISTING_PAUSE_MAX_SECONDS))

        logger.info(f"Collected {len(seeds)} profile seeds from {self.stats.listing_pages} listing pages")
        return seeds

    def emit_listing_records(self, seeds: List[Dict[str, Any]]) -> None:
        """Save seeds as records without visiting profile pages."""
        defaults = self._defaults()
        for seed in seeds[:self.search.results_wanted]:
            self.output.append(merge_record(seed["url"], [], seed=seed, defaults=defaults))
            self.stats.saved += 1

    async def run(self) -> RunSummary:
        """
        Execute the run.

        Returns:
            RunSummary; success is False when nothing was saved
        """
        start = self._clock()
        deadline = start + self.config.max_runtime_seconds
        failed_urls: List[str] = []
        seeds: List[Dict[str, Any]] = []

        logger.info(
            f"Harvest: specialty=\"{self.search.specialty}\" location=\"{self.search.location}\" "
            f"results={self.search.results_wanted} max_pages={self.search.max_pages} "
            f"details={self.search.collect_details} concurrency={self.search.max_concurrency}"
        )

        state = SessionState.load(self.store.get(self.config.state_key))
        try:
            fetcher = self._build_fetcher(state)
            self.output.create_run_directory(self.listing_urls()[0])

            seeds = await self.collect_seeds(fetcher, deadline)

            if seeds and self.search.collect_details:
                orchestrator = CrawlOrchestrator(
                    fetcher,
                    sink=self.output.append,
                    result_cap=self.search.results_wanted,
                    width=self.search.max_concurrency,
                    deadline=deadline,
                    defaults=self._defaults(),
                    stats=self.stats,
                    clock=self._clock,
                    sleep=self._sleep,
                )
                targets = [
                    FetchTarget(url=seed["url"], kind=TargetKind.DETAIL, seed=seed)
                    for seed in seeds[:self.search.results_wanted]
                ]
                report = await orchestrator.run(targets)
                failed_urls = report.failed
            elif seeds:
                self.emit_listing_records(seeds)
        finally:
            self.store.put(self.config.state_key, state.to_dict())
            logger.debug(f"Session {state.session_id} flushed to store")

        summary = self._summarize(self._clock() - start, seeds, failed_urls)
        self._log_summary(summary)
        self.output.save_summary(summary, search=self._search_dict())
        return summary

    def _search_dict(self) -> Dict[str, Any]:
        return {
            "specialty": self.search.specialty,
            "location": self.search.location,
            "start_url": self.search.start_url,
            "results_wanted": self.search.results_wanted,
            "max_pages": self.search.max_pages,
            "collect_details": self.search.collect_details,
        }

    def _summarize(self, runtime: float, seeds: List[Dict[str, Any]], failed_urls: List[str]) -> RunSummary:
        if not seeds:
            return RunSummary(
                success=False,
                message=NO_PROFILES_MESSAGE,
                stats=self.stats,
                runtime_seconds=runtime,
                remediation=REMEDIATION_HINT,
            )
        if self.stats.saved == 0:
            return RunSummary(
                success=False,
                message=NO_RESULTS_MESSAGE,
                stats=self.stats,
                runtime_seconds=runtime,
                failed_urls=failed_urls,
                remediation=REMEDIATION_HINT,
            )
        return RunSummary(
            success=True,
            message=f"Saved {self.stats.saved}/{self.search.results_wanted} records",
            stats=self.stats,
            runtime_seconds=runtime,
            failed_urls=failed_urls,
        )

    def _log_summary(self, summary: RunSummary) -> None:
        stats = summary.stats
        rate = stats.saved / summary.runtime_seconds if summary.runtime_seconds > 0 else 0.0

        logger.info("=" * 60)
        logger.info("Execution summary")
        logger.info(f"Listing pages: {stats.listing_pages}")
        logger.info(f"Listing candidates found: {stats.listing_candidates}")
        logger.info(f"Detail pages attempted: {stats.detail_pages}")
        logger.info(f"Saved: {stats.saved}/{self.search.results_wanted}")
        logger.info(
            f"Tier hits: data endpoint={stats.data_endpoint_hits} "
            f"document={stats.document_hits} browser={stats.browser_hits}"
        )
        logger.info(f"Browser bootstraps: {stats.bootstraps}")
        logger.info(f"Blocked responses: {stats.blocked}")
        logger.info(f"Errors: {stats.errors}")
        logger.info(f"Runtime: {summary.runtime_seconds:.2f}s ({rate:.2f} rec/s)")
        logger.info("=" * 60)

        if summary.success:
            logger.info(summary.message)
        else:
            logger.error(f"{summary.message} {summary.remediation or ''}".strip())


async def run_harvest(search: SearchInput, config: Optional[HarvestConfig] = None, **kwargs) -> RunSummary:
    """Run one harvest with default collaborators."""
    runner = HarvestRunner(config or HarvestConfig.from_env(), search, **kwargs)
    return await runner.run()
