"""
DOM heuristics for listing and profile pages.

Used when neither a structured payload nor JSON-LD yields data. Each detail
attribute is an ordered list of probes; the first probe that returns a value
wins. Probes are plain functions of the parsed page so each can be tested on
its own.
"""

import re
from typing import Any, Callable, Dict, List, Optional, Sequence

from bs4 import BeautifulSoup, Tag

from harvest.constants import (
    DEFAULT_BASE_URL,
    GENERIC_LINK_TEXT_PATTERN,
    MIN_NAME_LENGTH,
    NOISE_PATH_PATTERN,
    PROFILE_PATH_PATTERN,
)
from harvest.extraction.common import clean_text, first_number, normalize_url

Probe = Callable[[BeautifulSoup], Optional[Any]]

_PROFILE_PATH = re.compile(PROFILE_PATH_PATTERN, re.IGNORECASE)
_NOISE_PATH = re.compile(NOISE_PATH_PATTERN, re.IGNORECASE)
_GENERIC_TEXT = re.compile(GENERIC_LINK_TEXT_PATTERN, re.IGNORECASE)

CARD_TAGS = ["article", "li", "section", "div"]


def _text_of(node: Optional[Tag]) -> Optional[str]:
    return clean_text(node.get_text(" ")) if node is not None else None


def _select_text(selector: str) -> Probe:
    def probe(soup: BeautifulSoup) -> Optional[str]:
        return _text_of(soup.select_one(selector))
    return probe


def _select_attr(selector: str, attr: str) -> Probe:
    def probe(soup: BeautifulSoup) -> Optional[str]:
        node = soup.select_one(selector)
        return clean_text(node.get(attr)) if node is not None else None
    return probe


def _mailto(soup: BeautifulSoup) -> Optional[str]:
    node = soup.select_one('a[href^="mailto:"]')
    if node is None:
        return None
    return clean_text(re.sub(r"^mailto:", "", node.get("href", ""), flags=re.IGNORECASE))


def _website_link(soup: BeautifulSoup) -> Optional[str]:
    for anchor in soup.select('a[href*="http"]'):
        if "website" in anchor.get_text(" ").lower():
            return clean_text(anchor.get("href"))
    return None


def _rating(soup: BeautifulSoup) -> Optional[float]:
    return first_number(_text_of(soup.select_one('[class*="rating"]')))


NAME_PROBES: Sequence[Probe] = (
    _select_text("h1"),
    _select_text('[data-testid*="name"], [class*="Name"]'),
)
PHONE_PROBES: Sequence[Probe] = (_select_text('a[href^="tel:"]'),)
EMAIL_PROBES: Sequence[Probe] = (_mailto, _select_text('[data-testid*="email"]'))
WEBSITE_PROBES: Sequence[Probe] = (_website_link,)
SPECIALTY_PROBES: Sequence[Probe] = (
    _select_text('[class*="specialty"]'),
    _select_text('[data-testid*="specialty"]'),
)
RATING_PROBES: Sequence[Probe] = (_rating,)
BIO_PROBES: Sequence[Probe] = (
    _select_text('[class*="bio"], [class*="about"], [data-testid*="bio"]'),
    _select_attr('meta[name="description"]', "content"),
)
IMAGE_PROBES: Sequence[Probe] = (
    _select_attr('img[class*="photo"], img[class*="profile"], img[alt*="Dr"]', "src"),
)

DETAIL_PROBES: Dict[str, Sequence[Probe]] = {
    "name": NAME_PROBES,
    "phone": PHONE_PROBES,
    "email": EMAIL_PROBES,
    "website": WEBSITE_PROBES,
    "specialty": SPECIALTY_PROBES,
    "rating": RATING_PROBES,
    "bio": BIO_PROBES,
    "image": IMAGE_PROBES,
}


def run_probes(soup: BeautifulSoup, probes: Sequence[Probe]) -> Optional[Any]:
    """Evaluate probes in order and return the first non-None result."""
    for probe in probes:
        value = probe(soup)
        if value is not None:
            return value
    return None


def extract_detail_fields(soup: BeautifulSoup, base_url: str = DEFAULT_BASE_URL) -> Dict[str, Any]:
    """Scrape profile fields from a rendered profile page."""
    fields = {name: run_probes(soup, probes) for name, probes in DETAIL_PROBES.items()}
    if fields["image"]:
        fields["image"] = normalize_url(fields["image"], base_url)
    return fields


def _card_name(anchor: Tag, card: Optional[Tag]) -> Optional[str]:
    name = clean_text(anchor.get("aria-label")) or _text_of(anchor)
    if not name and card is not None:
        name = _text_of(card.select_one('h2, h3, h4, [class*="name"]'))
    return name


def extract_listing_anchors(soup: BeautifulSoup, base_url: str = DEFAULT_BASE_URL) -> List[Dict[str, Any]]:
    """
    Find profile links on a listing page.

    Returns:
        Seed dicts (url, name, specialty, location, rating), one per profile URL
    """
    profiles: List[Dict[str, Any]] = []
    seen = set()

    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        if not _PROFILE_PATH.search(href) or _NOISE_PATH.search(href):
            continue

        url = normalize_url(href, base_url)
        if not url or url in seen:
            continue

        card = anchor.find_parent(CARD_TAGS)
        name = _card_name(anchor, card)
        if not name or len(name) < MIN_NAME_LENGTH or _GENERIC_TEXT.search(name):
            continue

        seen.add(url)
        profile = {"url": url, "name": name, "specialty": None, "location": None, "rating": None}
        if card is not None:
            profile["specialty"] = _text_of(card.select_one('[class*="specialty"]'))
            profile["location"] = _text_of(card.select_one('[class*="location"], [class*="address"]'))
            profile["rating"] = first_number(_text_of(card.select_one('[class*="rating"]')))
        profiles.append(profile)

    return profiles
