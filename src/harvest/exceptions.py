"""Error taxonomy for the profile harvester."""

from typing import Optional


class HarvestError(Exception):
    """Base class for all harvester errors."""


class BlockedError(HarvestError):
    """Raised when a response is classified as an anti-bot block."""

    def __init__(self, message: str, status_code: Optional[int] = None, signal: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.signal = signal
        super().__init__(message)


class TransportError(HarvestError):
    """Raised when a request fails at the network level after all retries."""


class BootstrapError(HarvestError):
    """Raised when the headless browser cannot launch or navigate."""


class BootstrapBudgetExhausted(BootstrapError):
    """Raised when no browser launches remain in this run's budget."""


class ParseError(HarvestError):
    """Raised for malformed structured payloads. Extractors treat it as empty."""


class StoreUnavailableError(HarvestError):
    """Raised when the persistent session store cannot be opened."""


class ProxyError(HarvestError):
    """Raised when the proxy pool cannot produce an endpoint for a session key."""
