"""Classify raw responses as anti-bot blocks or legitimate content."""

from typing import Optional

from harvest.constants import (
    BLOCK_SCAN_PREFIX_CHARS,
    BLOCKED_NOTICE_MARKER,
    BLOCKING_STATUS_CODES,
    CHALLENGE_MARKER,
    EDGE_NETWORK_MARKER,
    REQUEST_TRACE_MARKER,
)


def detect_block_signal(status_code: Optional[int], body: Optional[str]) -> Optional[str]:
    """Detect which block rule, if any, a response trips.

    Undetected soft blocks are acceptable here; they surface later as
    empty extractions.

    Args:
        status_code: HTTP status code (None or 0 when unknown)
        body: Response body text

    Returns:
        Name of the rule that fired, or None if the response looks legitimate
    """
    if status_code in BLOCKING_STATUS_CODES:
        return f"status_{status_code}"

    text = (body or "")[:BLOCK_SCAN_PREFIX_CHARS].lower()
    if not text:
        return None

    edge = EDGE_NETWORK_MARKER in text
    if edge and CHALLENGE_MARKER in text:
        return "challenge_page"
    if BLOCKED_NOTICE_MARKER in text:
        return "blocked_notice"
    if edge and REQUEST_TRACE_MARKER in text:
        return "edge_trace"

    return None


def is_blocked(status_code: Optional[int], body: Optional[str]) -> bool:
    """Check whether a response is an anti-bot block."""
    return detect_block_signal(status_code, body) is not None
