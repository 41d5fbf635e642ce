"""
Embedded metadata (JSON-LD) extraction.

Profile pages describe the practitioner with schema.org markup. The first
item typed as a practitioner or practice wins.
"""

import logging
from typing import Any, Dict, Iterator, List, Optional

from bs4 import BeautifulSoup

from harvest.constants import PROFILE_SCHEMA_TYPES
from harvest.exceptions import ParseError
from harvest.extraction.common import clean_text, parse_json, to_count, to_number

logger = logging.getLogger(__name__)


def iter_json_ld(soup: BeautifulSoup) -> Iterator[Dict[str, Any]]:
    """Yield JSON-LD items in document order, flattening arrays and @graph."""
    for script in soup.find_all("script", type="application/ld+json"):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            parsed = parse_json(raw.strip())
        except ParseError as e:
            logger.debug(f"Skipping malformed JSON-LD block: {e}")
            continue

        pending: List[Any] = parsed if isinstance(parsed, list) else [parsed]
        for item in pending:
            if not isinstance(item, dict):
                continue
            graph = item.get("@graph")
            if isinstance(graph, list):
                yield from (node for node in graph if isinstance(node, dict))
                if "@type" not in item:
                    continue
            yield item


def _types(item: Dict[str, Any]) -> List[str]:
    value = item.get("@type")
    if not value:
        return []
    values = value if isinstance(value, list) else [value]
    return [v for v in values if isinstance(v, str)]


def _specialty(item: Dict[str, Any]) -> Optional[str]:
    medical = item.get("medicalSpecialty")
    if isinstance(medical, dict):
        return clean_text(medical.get("name"))
    if isinstance(medical, list) and medical:
        first = medical[0]
        return clean_text(first.get("name") if isinstance(first, dict) else first)
    return clean_text(medical) or clean_text(item.get("specialty"))


def _image(item: Dict[str, Any]) -> Optional[str]:
    image = item.get("image")
    if isinstance(image, dict):
        return clean_text(image.get("url"))
    if isinstance(image, list) and image:
        first = image[0]
        return clean_text(first.get("url") if isinstance(first, dict) else first)
    return clean_text(image)


def _address(item: Dict[str, Any]) -> Optional[Dict[str, Optional[str]]]:
    address = item.get("address")
    if isinstance(address, list) and address:
        address = address[0]
    if not isinstance(address, dict):
        return None
    return {
        "street": clean_text(address.get("streetAddress")),
        "city": clean_text(address.get("addressLocality")),
        "state": clean_text(address.get("addressRegion")),
        "zip": clean_text(address.get("postalCode")),
    }


def map_json_ld_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Map one schema.org item into record fields."""
    rating = item.get("aggregateRating") if isinstance(item.get("aggregateRating"), dict) else {}
    address = _address(item)
    location = None
    if address and address["city"] and address["state"]:
        location = f"{address['city']}, {address['state']}"

    return {
        "name": clean_text(item.get("name")),
        "specialty": _specialty(item),
        "bio": clean_text(item.get("description")),
        "phone": clean_text(item.get("telephone")),
        "email": clean_text(item.get("email")),
        "image": _image(item),
        "rating": to_number(rating.get("ratingValue")),
        "review_count": to_count(rating.get("reviewCount")),
        "address": address,
        "location": location,
    }


def extract_structured_profile(soup: BeautifulSoup) -> Optional[Dict[str, Any]]:
    """
    Extract the first practitioner-typed JSON-LD item.

    Args:
        soup: Parsed page

    Returns:
        Record fields, or None if no item matches
    """
    for item in iter_json_ld(soup):
        if PROFILE_SCHEMA_TYPES.intersection(_types(item)):
            return map_json_ld_item(item)
    return None
