"""Small text, URL and number helpers shared by the extractors."""

import json
import math
import re
from typing import Any, Optional

from harvest.constants import DEFAULT_BASE_URL
from harvest.exceptions import ParseError

_WHITESPACE = re.compile(r"\s+")
_NUMBER = re.compile(r"(\d+(\.\d+)?)")
_LEADING_DOT_SLASH = re.compile(r"^\.?/")


def clean_text(text: Any) -> Optional[str]:
    """Collapse whitespace; empty results become None."""
    if text is None or text is False:
        return None
    if isinstance(text, (dict, list)):
        return None
    out = _WHITESPACE.sub(" ", str(text)).strip()
    return out or None


def normalize_url(href: Any, base_url: str = DEFAULT_BASE_URL) -> Optional[str]:
    """Resolve a possibly relative link against the site origin."""
    if not href or not isinstance(href, str):
        return None
    trimmed = href.strip()
    if not trimmed:
        return None
    base = base_url.rstrip("/")
    if trimmed.startswith(("http://", "https://")):
        return trimmed
    if trimmed.startswith("//"):
        return f"https:{trimmed}"
    if trimmed.startswith("/"):
        return f"{base}{trimmed}"
    return f"{base}/{_LEADING_DOT_SLASH.sub('', trimmed)}"


def to_number(value: Any) -> Optional[float]:
    """Coerce to a finite float, or None. Booleans are not numbers."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def to_count(value: Any) -> Optional[int]:
    """Coerce to an integer count, or None."""
    number = to_number(value)
    return int(number) if number is not None else None


def first_number(text: Optional[str]) -> Optional[float]:
    """First decimal-or-integer token in a string."""
    if not text:
        return None
    match = _NUMBER.search(text)
    return float(match.group(1)) if match else None


def parse_json(text: Any) -> Any:
    """Parse a JSON document.

    Raises:
        ParseError: If the text is not valid JSON
    """
    if not isinstance(text, (str, bytes)):
        raise ParseError(f"Expected JSON text, got {type(text).__name__}")
    try:
        return json.loads(text)
    except ValueError as e:
        raise ParseError(f"Invalid JSON: {e}") from e
