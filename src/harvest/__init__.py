"""Resilient directory profile harvester."""

__version__ = "0.1.0"

from harvest.block_detector import detect_block_signal, is_blocked
from harvest.browser import BootstrapConfig, BootstrapResult, BrowserBootstrap
from harvest.config import HarvestConfig, SearchInput, settings
from harvest.exceptions import (
    BlockedError,
    BootstrapBudgetExhausted,
    BootstrapError,
    HarvestError,
    ParseError,
    ProxyError,
    StoreUnavailableError,
    TransportError,
)
from harvest.models import (
    Candidate,
    CandidateSource,
    Channel,
    FetchTarget,
    ProfileRecord,
    RawResponse,
    RunStats,
    RunSummary,
    TargetKind,
)
from harvest.orchestrator import CrawlOrchestrator, OrchestratorReport
from harvest.output_manager import OutputManager
from harvest.proxy import ProxyPool, create_proxy_pool
from harvest.runner import HarvestRunner, run_harvest
from harvest.session import SessionState
from harvest.session_store import JsonFileStore, MemoryStore
from harvest.strategy import TieredFetcher, TierOutcome, TierState, next_state
from harvest.transport import ResponseKind, RotationPolicy, Transport

__all__ = [
    "BlockedError",
    "BootstrapBudgetExhausted",
    "BootstrapConfig",
    "BootstrapError",
    "BootstrapResult",
    "BrowserBootstrap",
    "Candidate",
    "CandidateSource",
    "Channel",
    "CrawlOrchestrator",
    "FetchTarget",
    "HarvestConfig",
    "HarvestError",
    "HarvestRunner",
    "JsonFileStore",
    "MemoryStore",
    "OrchestratorReport",
    "OutputManager",
    "ParseError",
    "ProfileRecord",
    "ProxyError",
    "ProxyPool",
    "RawResponse",
    "ResponseKind",
    "RotationPolicy",
    "RunStats",
    "RunSummary",
    "SearchInput",
    "SessionState",
    "StoreUnavailableError",
    "TargetKind",
    "TieredFetcher",
    "TierOutcome",
    "TierState",
    "Transport",
    "TransportError",
    "create_proxy_pool",
    "detect_block_signal",
    "is_blocked",
    "next_state",
    "run_harvest",
    "settings",
]
