"""Dispatch a response to the extractors that apply to it."""

import logging
from typing import Any, Dict, List

from bs4 import BeautifulSoup

from harvest.constants import DEFAULT_BASE_URL
from harvest.exceptions import ParseError
from harvest.extraction.common import parse_json
from harvest.extraction.dom import extract_detail_fields, extract_listing_anchors
from harvest.extraction.json_walker import (
    best_profile_object,
    extract_listing_candidates,
    has_profile_content,
    normalize_profile_object,
)
from harvest.extraction.next_data import extract_next_data
from harvest.extraction.structured import extract_structured_profile
from harvest.models import Candidate, CandidateSource, Channel, RawResponse, TargetKind

logger = logging.getLogger(__name__)


def _from_payload(kind: TargetKind, payload: Any, base_url: str) -> List[Candidate]:
    if kind == TargetKind.LISTING:
        return [
            Candidate(source=CandidateSource.DATA_ENDPOINT, fields=fields)
            for fields in extract_listing_candidates(payload, base_url)
        ]
    fields = normalize_profile_object(best_profile_object(payload))
    if not has_profile_content(fields):
        return []
    return [Candidate(source=CandidateSource.DATA_ENDPOINT, fields=fields)]


def _from_document(kind: TargetKind, html: str, base_url: str) -> List[Candidate]:
    candidates: List[Candidate] = []

    next_data = extract_next_data(html)
    if next_data:
        candidates.extend(_from_payload(kind, next_data, base_url))

    soup = BeautifulSoup(html, "html.parser")

    if kind == TargetKind.LISTING:
        seen = {c.fields["url"] for c in candidates}
        for fields in extract_listing_anchors(soup, base_url):
            if fields["url"] not in seen:
                seen.add(fields["url"])
                candidates.append(Candidate(source=CandidateSource.DOM_HEURISTIC, fields=fields))
        return candidates

    structured = extract_structured_profile(soup)
    if structured:
        candidates.append(Candidate(source=CandidateSource.EMBEDDED_METADATA, fields=structured))

    dom_fields: Dict[str, Any] = extract_detail_fields(soup, base_url)
    if dom_fields.get("name") or dom_fields.get("phone"):
        candidates.append(Candidate(source=CandidateSource.DOM_HEURISTIC, fields=dom_fields))

    return candidates


def extract_candidates(kind: TargetKind, response: RawResponse, base_url: str = DEFAULT_BASE_URL) -> List[Candidate]:
    """
    Run every extractor that applies to a response.

    Args:
        kind: Whether the response is a listing or a profile page
        response: Body and the channel it came through
        base_url: Origin that relative links resolve against

    Returns:
        Candidates in precedence order; empty when nothing was recognized
    """
    if not response.body:
        return []

    if response.channel == Channel.DATA_ENDPOINT:
        try:
            payload = parse_json(response.body)
        except ParseError as e:
            logger.debug(f"Data endpoint returned non-JSON body for {response.url}: {e}")
            return []
        return _from_payload(kind, payload, base_url)

    return _from_document(kind, response.body, base_url)
