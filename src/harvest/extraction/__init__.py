"""Extractors turning raw responses into candidate record fields."""

from harvest.extraction.dom import extract_detail_fields, extract_listing_anchors
from harvest.extraction.json_walker import (
    best_profile_object,
    extract_listing_candidates,
    normalize_profile_object,
    walk_json,
)
from harvest.extraction.next_data import build_data_url, extract_build_id, extract_next_data
from harvest.extraction.normalizer import merge_record
from harvest.extraction.pipeline import extract_candidates
from harvest.extraction.structured import extract_structured_profile

__all__ = [
    "best_profile_object",
    "build_data_url",
    "extract_build_id",
    "extract_candidates",
    "extract_detail_fields",
    "extract_listing_anchors",
    "extract_listing_candidates",
    "extract_next_data",
    "extract_structured_profile",
    "merge_record",
    "normalize_profile_object",
    "walk_json",
]
