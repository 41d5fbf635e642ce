"""
Tiered fetch strategy.

Each target walks a small state machine, cheapest channel first:

    NEED_BUILD_ID -> TRY_DATA_ENDPOINT -> TRY_DOCUMENT -> TRY_BROWSER -> DONE | FAILED

Transitions are decided by the pure ``next_state`` function; the handlers on
``TieredFetcher`` do the network calls and session updates. Handler errors
never escape: they are recorded on the outcome and the machine falls through
to the next tier.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from harvest.browser import BrowserBootstrap
from harvest.constants import BROWSER_TIER_TIMEOUT_MS, BUILD_ID_PROBE_RETRIES, DEFAULT_BASE_URL, DEFAULT_MAX_RETRIES
from harvest.extraction.next_data import build_data_url, extract_build_id
from harvest.extraction.pipeline import extract_candidates
from harvest.exceptions import TransportError
from harvest.models import Candidate, Channel, FetchTarget, RawResponse, RunStats
from harvest.transport import ResponseKind, Transport

logger = logging.getLogger(__name__)


def _require_ok(response: RawResponse) -> None:
    """Reject error pages so they count as a failed tier, not a parsed page."""
    if response.status_code >= 400:
        raise TransportError(f"HTTP {response.status_code} at {response.url}")


class TierState(str, Enum):
    """States of the per-target fetch machine."""
    NEED_BUILD_ID = "need_build_id"
    TRY_DATA_ENDPOINT = "try_data_endpoint"
    TRY_DOCUMENT = "try_document"
    TRY_BROWSER = "try_browser"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TierState.DONE, TierState.FAILED)


def next_state(state: TierState, *, has_build_id: bool, found: bool, browser_available: bool) -> TierState:
    """
    Decide the next tier.

    Args:
        state: Current state
        has_build_id: Whether the session knows the site's build id
        found: Whether the current tier produced at least one candidate
        browser_available: Whether the browser tier may still run

    Returns:
        The next state; terminal states map to themselves
    """
    if state == TierState.NEED_BUILD_ID:
        return TierState.TRY_DATA_ENDPOINT if has_build_id else TierState.TRY_DOCUMENT
    if state == TierState.TRY_DATA_ENDPOINT:
        return TierState.DONE if found else TierState.TRY_DOCUMENT
    if state == TierState.TRY_DOCUMENT:
        if found:
            return TierState.DONE
        return TierState.TRY_BROWSER if browser_available else TierState.FAILED
    if state == TierState.TRY_BROWSER:
        return TierState.DONE if found else TierState.FAILED
    return state


@dataclass
class TierOutcome:
    """Result of running one target through the tiers."""
    target: FetchTarget
    state: TierState = TierState.NEED_BUILD_ID
    candidates: List[Candidate] = field(default_factory=list)
    channel: Optional[Channel] = None
    trail: List[TierState] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.state == TierState.DONE and bool(self.candidates)


@dataclass
class _TargetContext:
    """Responses obtained earlier for the same target, reused by later tiers."""
    probe_response: Optional[RawResponse] = None
    bootstrap_html: Optional[str] = None


class TieredFetcher:
    """Runs targets through the tier machine using the shared transport and browser."""

    def __init__(
        self,
        transport: Transport,
        bootstrap: Optional[BrowserBootstrap] = None,
        stats: Optional[RunStats] = None,
        base_url: str = DEFAULT_BASE_URL,
        browser_timeout_ms: int = BROWSER_TIER_TIMEOUT_MS,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self.transport = transport
        self.bootstrap = bootstrap
        self.stats = stats if stats is not None else transport.stats
        self.base_url = base_url
        self.browser_timeout_ms = browser_timeout_ms
        self.max_retries = max_retries

    @property
    def session(self):
        return self.transport.session

    def _browser_available(self, ctx: _TargetContext) -> bool:
        if ctx.bootstrap_html is not None:
            return True
        return self.bootstrap is not None and self.bootstrap.can_launch()

    async def fetch(self, target: FetchTarget) -> TierOutcome:
        """
        Acquire candidates for one target.

        Args:
            target: Listing or profile page to fetch

        Returns:
            TierOutcome in state DONE (with candidates) or FAILED
        """
        outcome = TierOutcome(target=target)
        ctx = _TargetContext()
        state = TierState.NEED_BUILD_ID

        while not state.is_terminal:
            outcome.trail.append(state)
            found = False

            if state == TierState.NEED_BUILD_ID:
                await self._ensure_build_id(target, outcome, ctx)
            elif state == TierState.TRY_DATA_ENDPOINT:
                found = await self._try_data_endpoint(target, outcome)
            elif state == TierState.TRY_DOCUMENT:
                found = await self._try_document(target, outcome, ctx)
            elif state == TierState.TRY_BROWSER:
                found = await self._try_browser(target, outcome, ctx)

            state = next_state(
                state,
                has_build_id=bool(self.session.build_id),
                found=found,
                browser_available=self._browser_available(ctx),
            )

        outcome.trail.append(state)
        outcome.state = state

        if state == TierState.FAILED:
            logger.warning(f"All tiers failed for {target.url}: {'; '.join(outcome.errors) or 'no data found'}")
        else:
            logger.debug(f"Fetched {target.url} via {outcome.channel.value} ({len(outcome.candidates)} candidates)")
        return outcome

    def _record_error(self, outcome: TierOutcome, tier: TierState, error: Exception) -> None:
        error_msg = str(error) if str(error) else type(error).__name__
        outcome.errors.append(f"{tier.value}: {error_msg}")
        logger.debug(f"Tier {tier.value} failed for {outcome.target.url}: {error_msg}")

    def _accept(self, outcome: TierOutcome, response: RawResponse, channel: Channel) -> bool:
        candidates = extract_candidates(outcome.target.kind, response, self.base_url)
        if not candidates:
            return False
        outcome.candidates = candidates
        outcome.channel = channel
        self.stats.record_hit(channel)
        return True

    async def _refresh_build_id(self, html: str) -> None:
        build_id = extract_build_id(html)
        if build_id:
            async with self.session.lock:
                self.session.update_build_id(build_id)

    async def _ensure_build_id(self, target: FetchTarget, outcome: TierOutcome, ctx: _TargetContext) -> None:
        if self.session.build_id:
            return

        try:
            response = await self.transport.fetch(target.url, max_retries=BUILD_ID_PROBE_RETRIES)
            ctx.probe_response = response
            await self._refresh_build_id(response.body)
        except Exception as e:
            self._record_error(outcome, TierState.NEED_BUILD_ID, e)

        if self.session.build_id:
            return

        if self.bootstrap is None or not self.bootstrap.can_launch():
            return

        logger.info(f"No build id from HTTP, bootstrapping browser for {target.url}")
        try:
            result = await self.bootstrap.bootstrap(target.url)
            ctx.bootstrap_html = result.html
        except Exception as e:
            self._record_error(outcome, TierState.NEED_BUILD_ID, e)

    async def _try_data_endpoint(self, target: FetchTarget, outcome: TierOutcome) -> bool:
        data_url = build_data_url(self.session.build_id, target.url)
        if not data_url:
            return False
        try:
            response = await self.transport.fetch(data_url, kind=ResponseKind.DATA, max_retries=self.max_retries)
            _require_ok(response)
            return self._accept(outcome, response, Channel.DATA_ENDPOINT)
        except Exception as e:
            self._record_error(outcome, TierState.TRY_DATA_ENDPOINT, e)
            return False

    async def _try_document(self, target: FetchTarget, outcome: TierOutcome, ctx: _TargetContext) -> bool:
        try:
            response = ctx.probe_response
            ctx.probe_response = None
            if response is None:
                response = await self.transport.fetch(target.url, max_retries=self.max_retries)
            await self._refresh_build_id(response.body)
            _require_ok(response)
            return self._accept(outcome, response, Channel.DOCUMENT)
        except Exception as e:
            self._record_error(outcome, TierState.TRY_DOCUMENT, e)
            return False

    async def _try_browser(self, target: FetchTarget, outcome: TierOutcome, ctx: _TargetContext) -> bool:
        try:
            html = ctx.bootstrap_html
            if html is None:
                result = await self.bootstrap.bootstrap(target.url, timeout_ms=self.browser_timeout_ms)
                html = result.html
            response = RawResponse(status_code=200, body=html, channel=Channel.BROWSER, url=target.url)
            return self._accept(outcome, response, Channel.BROWSER)
        except Exception as e:
            self._record_error(outcome, TierState.TRY_BROWSER, e)
            return False
