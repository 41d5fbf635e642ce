"""
Search input to listing URL mapping.

The directory organizes listings as ``/{specialty-slug}/{state}/{city}``.
Free-text specialties are mapped through a lookup table with a slugified
fallback; locations accept "City, ST", "City, State", "City ST" or a bare
state.
"""

import re
from typing import Dict, Optional

from harvest.constants import DEFAULT_BASE_URL

SPECIALTY_SLUGS: Dict[str, str] = {
    "cardiovascular disease": "cardiologists",
    "cardiology": "cardiologists",
    "cardiologist": "cardiologists",
    "dermatology": "dermatologists",
    "dermatologist": "dermatologists",
    "family medicine": "family-medicine-doctors",
    "family practice": "family-medicine-doctors",
    "internal medicine": "internists",
    "internist": "internists",
    "orthopedic surgery": "orthopedic-surgeons",
    "orthopedics": "orthopedic-surgeons",
    "pediatrics": "pediatricians",
    "pediatrician": "pediatricians",
    "psychiatry": "psychiatrists",
    "psychiatrist": "psychiatrists",
    "neurology": "neurologists",
    "neurologist": "neurologists",
    "obstetrics gynecology": "obstetricians-gynecologists",
    "ob gyn": "obstetricians-gynecologists",
    "ophthalmology": "ophthalmologists",
    "ophthalmologist": "ophthalmologists",
    "dentist": "dentists",
    "dentistry": "dentists",
    "gastroenterology": "gastroenterologists",
    "gastroenterologist": "gastroenterologists",
    "urology": "urologists",
    "urologist": "urologists",
    "pulmonology": "pulmonologists",
    "pulmonologist": "pulmonologists",
    "endocrinology": "endocrinologists",
    "endocrinologist": "endocrinologists",
    "rheumatology": "rheumatologists",
    "rheumatologist": "rheumatologists",
    "oncology": "oncologists",
    "oncologist": "oncologists",
    "allergy immunology": "allergists-immunologists",
    "allergist": "allergists-immunologists",
    "pain management": "pain-management-specialists",
    "physical therapy": "physical-therapists",
    "chiropractor": "chiropractors",
    "podiatrist": "podiatrists",
    "optometrist": "optometrists",
}

STATE_ABBREVIATIONS: Dict[str, str] = {
    "alabama": "al", "alaska": "ak", "arizona": "az", "arkansas": "ar",
    "california": "ca", "colorado": "co", "connecticut": "ct", "delaware": "de",
    "florida": "fl", "georgia": "ga", "hawaii": "hi", "idaho": "id",
    "illinois": "il", "indiana": "in", "iowa": "ia", "kansas": "ks",
    "kentucky": "ky", "louisiana": "la", "maine": "me", "maryland": "md",
    "massachusetts": "ma", "michigan": "mi", "minnesota": "mn", "mississippi": "ms",
    "missouri": "mo", "montana": "mt", "nebraska": "ne", "nevada": "nv",
    "new hampshire": "nh", "new jersey": "nj", "new mexico": "nm", "new york": "ny",
    "north carolina": "nc", "north dakota": "nd", "ohio": "oh", "oklahoma": "ok",
    "oregon": "or", "pennsylvania": "pa", "rhode island": "ri", "south carolina": "sc",
    "south dakota": "sd", "tennessee": "tn", "texas": "tx", "utah": "ut",
    "vermont": "vt", "virginia": "va", "washington": "wa", "west virginia": "wv",
    "wisconsin": "wi", "wyoming": "wy",
}

_NON_SLUG = re.compile(r"[^a-z0-9-]")


def get_specialty_slug(specialty: Optional[str]) -> str:
    """Map a free-text specialty to its listing slug."""
    if not specialty or not specialty.strip():
        return "doctors"
    lowered = specialty.lower().strip()
    known = SPECIALTY_SLUGS.get(lowered.replace("-", " "))
    if known:
        return known
    return _NON_SLUG.sub("", re.sub(r"\s+", "-", lowered))


def _state_code(text: str) -> Optional[str]:
    return text if len(text) == 2 else STATE_ABBREVIATIONS.get(text)


def _city_slug(text: str) -> Optional[str]:
    slug = _NON_SLUG.sub("", re.sub(r"\s+", "-", text.strip()))
    return slug or None


def parse_location(location: Optional[str]) -> Optional[Dict[str, Optional[str]]]:
    """
    Parse a location into ``{"state": "ny", "city": "new-york"}``.

    Returns:
        Dict with state code and city slug (city may be None), or None if no
        state can be recognized
    """
    if not location or not location.strip():
        return None
    normalized = location.lower().strip()

    if "," in normalized:
        city_part, _, state_part = normalized.partition(",")
        city_part, state_part = city_part.strip(), state_part.strip()
        if city_part and state_part:
            state = _state_code(state_part)
            if state:
                return {"state": state, "city": _city_slug(city_part)}

    parts = normalized.split()
    if len(parts) >= 2:
        state = _state_code(parts[-1])
        if state:
            return {"state": state, "city": _city_slug(" ".join(parts[:-1]))}

    if normalized in STATE_ABBREVIATIONS:
        return {"state": STATE_ABBREVIATIONS[normalized], "city": None}
    if len(normalized) == 2 and normalized in STATE_ABBREVIATIONS.values():
        return {"state": normalized, "city": None}
    return None


def build_listing_url(
    specialty: Optional[str],
    location: Optional[str],
    page: int = 1,
    base_url: str = DEFAULT_BASE_URL,
) -> str:
    """Build the listing page URL for a search; pages after the first get ``?page=N``."""
    base = base_url.rstrip("/")
    slug = get_specialty_slug(specialty)
    info = parse_location(location)

    city = info["city"] if info else None
    if info and city and city.replace("-", ""):
        url = f"{base}/{slug}/{info['state']}/{city}"
    elif info:
        url = f"{base}/{slug}/{info['state']}"
    else:
        url = f"{base}/{slug}"

    if page > 1:
        url += f"?page={page}"
    return url
