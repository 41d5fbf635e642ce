"""
Helpers for the framework-generated page payload.

Server-rendered pages embed their full page props in a
``<script id="__NEXT_DATA__">`` tag, together with the deployment's build
identifier. The same props can be fetched as JSON from
``/_next/data/{build_id}{path}.json`` once the build id is known.
"""

import logging
import re
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from harvest.exceptions import ParseError
from harvest.extraction.common import parse_json

logger = logging.getLogger(__name__)

_NEXT_DATA_SCRIPT = re.compile(
    r'<script[^>]+id="__NEXT_DATA__"[^>]*>(.*?)</script>',
    re.IGNORECASE | re.DOTALL,
)


def extract_next_data(html: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse the embedded page payload, or None if absent or malformed."""
    if not html:
        return None
    match = _NEXT_DATA_SCRIPT.search(html)
    if not match or not match.group(1).strip():
        return None
    try:
        data = parse_json(match.group(1).strip())
    except ParseError as e:
        logger.debug(f"Ignoring malformed __NEXT_DATA__: {e}")
        return None
    return data if isinstance(data, dict) else None


def extract_build_id(html: Optional[str]) -> Optional[str]:
    """Read the build identifier from the embedded page payload."""
    data = extract_next_data(html)
    if not data:
        return None
    build_id = data.get("buildId")
    return str(build_id) if build_id else None


def build_data_url(build_id: Optional[str], page_url: Optional[str]) -> Optional[str]:
    """
    Derive the JSON data endpoint for a page.

    Args:
        build_id: Deployment build identifier
        page_url: Absolute page URL

    Returns:
        ``{origin}/_next/data/{build_id}{path}.json`` with the page's query
        string, or None when either input is missing
    """
    if not build_id or not page_url:
        return None
    parts = urlsplit(page_url)
    if not parts.scheme or not parts.netloc:
        return None

    path = parts.path
    if path.endswith("/"):
        path = path[:-1]
    if not path:
        path = "/index"

    return urlunsplit((parts.scheme, parts.netloc, f"/_next/data/{build_id}{path}.json", parts.query, ""))
