"""
Crawl orchestrator: bounded-concurrency admission of fetch targets.

Targets are admitted in FIFO order while three conditions hold: fewer than
``width`` tasks are in flight, saved plus in-flight is below the result cap,
and the deadline has not passed. In-flight work is never cancelled; once the
deadline passes nothing new starts and the running tasks finish on their own.
"""

import asyncio
import logging
import random
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from harvest.constants import (
    ADMISSION_STAGGER_MAX_SECONDS,
    ADMISSION_STAGGER_MIN_SECONDS,
    DEFAULT_MAX_CONCURRENCY,
    MAX_CONCURRENCY_CAP,
)
from harvest.extraction.normalizer import merge_record
from harvest.models import FetchTarget, ProfileRecord, RunStats, TargetKind
from harvest.strategy import TieredFetcher

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorReport:
    """What happened to the targets handed to one run() call."""
    saved: int = 0
    failed: List[str] = field(default_factory=list)
    duplicates: int = 0
    not_admitted: List[str] = field(default_factory=list)
    dropped_records: int = 0


class CrawlOrchestrator:
    """Bounded worker pool turning detail targets into emitted records."""

    def __init__(
        self,
        fetcher: TieredFetcher,
        sink: Callable[[ProfileRecord], Any],
        result_cap: int,
        width: int = DEFAULT_MAX_CONCURRENCY,
        deadline: Optional[float] = None,
        defaults: Optional[Dict[str, Any]] = None,
        stats: Optional[RunStats] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        stagger: tuple = (ADMISSION_STAGGER_MIN_SECONDS, ADMISSION_STAGGER_MAX_SECONDS),
    ):
        self.fetcher = fetcher
        self.sink = sink
        self.result_cap = max(0, result_cap)
        self.width = min(MAX_CONCURRENCY_CAP, max(1, width))
        self.deadline = deadline if deadline is not None else float("inf")
        self.defaults = defaults or {}
        self.stats = stats if stats is not None else fetcher.stats
        self._clock = clock
        self._sleep = sleep
        self._stagger = stagger
        self._emitted: Set[str] = set()

    def _may_admit(self, in_flight: int, report: OrchestratorReport) -> bool:
        return (
            in_flight < self.width
            and report.saved + in_flight < self.result_cap
            and self._clock() < self.deadline
        )

    def _emit(self, record: ProfileRecord, report: OrchestratorReport) -> bool:
        """Hand a record to the sink unless its URL was emitted or the cap is reached."""
        if record.url in self._emitted or report.saved >= self.result_cap:
            report.dropped_records += 1
            return False
        self._emitted.add(record.url)
        self.sink(record)
        report.saved += 1
        self.stats.saved += 1
        return True

    async def _process(self, target: FetchTarget, report: OrchestratorReport) -> None:
        try:
            outcome = await self.fetcher.fetch(target)
            if not outcome.found:
                report.failed.append(target.url)
                self.stats.errors += 1
                return
            record = merge_record(
                target.url,
                outcome.candidates,
                seed=target.seed,
                defaults=self.defaults,
                channel=outcome.channel,
            )
            self._emit(record, report)
        except Exception as e:
            error_msg = str(e) if str(e) else type(e).__name__
            logger.error(f"Worker failed for {target.url}: {error_msg}")
            report.failed.append(target.url)
            self.stats.errors += 1

    async def run(self, targets: Iterable[FetchTarget]) -> OrchestratorReport:
        """
        Process targets until the list, the result cap or the deadline runs out.

        Args:
            targets: Detail targets in admission order

        Returns:
            OrchestratorReport with saved/failed/skipped counts
        """
        report = OrchestratorReport()

        pending: deque = deque()
        queued: Set[str] = set()
        for target in targets:
            if target.url in queued or target.url in self._emitted:
                report.duplicates += 1
                continue
            queued.add(target.url)
            pending.append(target)

        logger.info(
            f"Processing {len(pending)} targets (width={self.width}, cap={self.result_cap}, "
            f"duplicates dropped={report.duplicates})"
        )

        in_flight: Set[asyncio.Task] = set()
        while pending:
            while pending and self._may_admit(len(in_flight), report):
                target = pending.popleft()
                if target.kind == TargetKind.DETAIL:
                    self.stats.detail_pages += 1
                in_flight.add(asyncio.create_task(self._process(target, report)))
                await self._sleep(random.uniform(*self._stagger))

            if not in_flight:
                break
            _, in_flight = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)

        if in_flight:
            await asyncio.gather(*in_flight)

        report.not_admitted = [t.url for t in pending]
        if report.not_admitted:
            logger.info(f"{len(report.not_admitted)} targets not admitted (cap or deadline reached)")

        return report
