"""
Record Normalizer: merge extractor candidates into one ProfileRecord.

Precedence is per field, highest first: data endpoint, embedded metadata,
DOM heuristics, the listing seed, then caller defaults. A record may combine
a phone from one candidate with a bio from another.
"""

from typing import Any, Dict, List, Optional

from harvest.extraction.common import to_count, to_number
from harvest.models import RECORD_FIELDS, Candidate, Channel, ProfileRecord

LIST_FIELDS = {"specialties", "education", "certifications", "accepted_insurance"}

LISTING_PROVENANCE = "listing"


def is_present(value: Any) -> bool:
    """Empty strings and empty collections count as missing; 0 is a value."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, dict, tuple)):
        return len(value) > 0
    return True


def _coerce(name: str, value: Any) -> Any:
    if name == "rating":
        return to_number(value)
    if name == "review_count":
        return to_count(value)
    if name in LIST_FIELDS:
        return list(value) if isinstance(value, (list, tuple)) else [value]
    if name == "address":
        return dict(value) if isinstance(value, dict) else {}
    return str(value) if not isinstance(value, str) else value.strip()


def merge_fields(
    candidates: List[Candidate],
    seed: Optional[Dict[str, Any]] = None,
    defaults: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Resolve every record field by precedence; missing fields are None or empty."""
    ordered = sorted(candidates, key=lambda c: c.source.priority)
    layers = [c.fields for c in ordered] + [seed or {}, defaults or {}]

    merged: Dict[str, Any] = {}
    for name in RECORD_FIELDS:
        value = None
        for layer in layers:
            candidate_value = layer.get(name)
            if is_present(candidate_value):
                value = _coerce(name, candidate_value)
                if is_present(value):
                    break
                value = None
        if value is None and name in LIST_FIELDS:
            value = []
        elif value is None and name == "address":
            value = {}
        merged[name] = value
    return merged


def merge_record(
    url: str,
    candidates: List[Candidate],
    seed: Optional[Dict[str, Any]] = None,
    defaults: Optional[Dict[str, Any]] = None,
    channel: Optional[Channel] = None,
) -> ProfileRecord:
    """
    Build the final record for one target.

    Args:
        url: Canonical profile URL
        candidates: Extractor outputs, in any order
        seed: Fields carried from the listing page
        defaults: Fallback labels from the search input
        channel: Channel that produced the candidates

    Returns:
        Immutable ProfileRecord with a "{channel}:{source}" provenance tag
    """
    fields = merge_fields(candidates, seed, defaults)

    if candidates and channel is not None:
        top = min(candidates, key=lambda c: c.source.priority)
        provenance = f"{channel.value}:{top.source.value}"
    else:
        provenance = LISTING_PROVENANCE

    return ProfileRecord(url=url, provenance=provenance, **fields)
