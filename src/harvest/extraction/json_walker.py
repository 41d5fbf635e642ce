"""
Extraction from structured page payloads (data endpoint or embedded JSON).

The payload shape is not stable across pages or deployments, so nothing here
addresses fields by absolute path. Instead the whole graph is walked and
objects are recognized by the keys they carry.
"""

from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from harvest.constants import DEFAULT_BASE_URL, LIKELY_LIST_KEYS, MAX_LIST_ITEMS, MIN_NAME_LENGTH
from harvest.extraction.common import clean_text, normalize_url, to_count, to_number

# A probe path is a key, or a tuple of keys/list indexes to descend through
ProbePath = Union[str, Tuple[Union[str, int], ...]]

URL_PROBES: Sequence[ProbePath] = (
    "profileUrl", "profile_url", "url", "seoUrl", "seo_url", "canonicalUrl", "canonical_url",
)
LISTING_NAME_PROBES: Sequence[ProbePath] = ("name", "fullName", "displayName", "providerName", "title")
PROFILE_NAME_PROBES: Sequence[ProbePath] = ("name", "fullName", "displayName")
SPECIALTY_PROBES: Sequence[ProbePath] = (
    "specialty", "primarySpecialty", ("specialties", 0), ("medicalSpecialty", "name"),
)
CITY_PROBES: Sequence[ProbePath] = ("city", ("address", "city"), "addressLocality", ("address", "addressLocality"))
STATE_PROBES: Sequence[ProbePath] = ("state", ("address", "state"), "addressRegion", ("address", "addressRegion"))
LOCATION_TEXT_PROBES: Sequence[ProbePath] = ("location", "practiceLocation")
REVIEW_COUNT_PROBES: Sequence[ProbePath] = ("reviewCount", "reviews", ("aggregateRating", "reviewCount"))
LISTING_ID_PROBES: Sequence[ProbePath] = ("id", "providerId", "provider_id", "doctorId", "doctor_id")
PROFILE_ID_PROBES: Sequence[ProbePath] = ("id", "providerId", "doctorId")
PHONE_PROBES: Sequence[ProbePath] = ("telephone", "phone", "phoneNumber")
BIO_PROBES: Sequence[ProbePath] = ("bio", "description", "about")
IMAGE_PROBES: Sequence[ProbePath] = (("image", "url"), "image")
WEBSITE_PROBES: Sequence[ProbePath] = ("website", "url")


def walk_json(root: Any) -> Iterator[Dict[str, Any]]:
    """
    Yield every mapping reachable from root.

    Depth-first with an explicit stack (last pushed, first visited). Each
    container is visited at most once by identity, so shared or cyclic
    references terminate.
    """
    seen = set()
    stack = [root]
    while stack:
        current = stack.pop()
        if not isinstance(current, (dict, list)):
            continue
        if id(current) in seen:
            continue
        seen.add(id(current))

        if isinstance(current, list):
            stack.extend(current)
            continue

        yield current
        stack.extend(current.values())


def probe(obj: Any, path: ProbePath) -> Any:
    """Follow a probe path into obj; None if any step is missing."""
    steps = (path,) if isinstance(path, str) else path
    current = obj
    for step in steps:
        if isinstance(step, int):
            if not isinstance(current, list) or len(current) <= step:
                return None
            current = current[step]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(step)
        if current is None:
            return None
    return current


def first_value(
    obj: Any,
    probes: Sequence[ProbePath],
    convert: Callable[[Any], Any] = clean_text,
) -> Any:
    """Evaluate probes in order and return the first converted value that is present."""
    for path in probes:
        value = convert(probe(obj, path))
        if value is not None:
            return value
    return None


def _numeric_rating(obj: Dict[str, Any]) -> Optional[float]:
    for key in ("rating", "averageRating"):
        value = obj.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return to_number(value)
    return to_number(probe(obj, ("aggregateRating", "ratingValue")))


def _location(obj: Dict[str, Any]) -> Optional[str]:
    city = first_value(obj, CITY_PROBES)
    state = first_value(obj, STATE_PROBES)
    if city and state:
        return f"{city}, {state}"
    return first_value(obj, LOCATION_TEXT_PROBES)


def _text_list(value: Any) -> List[str]:
    """Normalize a string, list of strings or list of named objects to strings."""
    if value is None:
        return []
    items = value if isinstance(value, list) else [value]
    out = []
    for item in items:
        if isinstance(item, dict):
            item = item.get("name") or item.get("title")
        text = clean_text(item)
        if text:
            out.append(text)
    return out


def normalize_listing_item(item: Any, base_url: str = DEFAULT_BASE_URL) -> Optional[Dict[str, Any]]:
    """Map one listing element to seed fields; None without a resolvable URL."""
    if not isinstance(item, dict):
        return None
    url = normalize_url(first_value(item, URL_PROBES, convert=lambda v: v if isinstance(v, str) else None), base_url)
    if not url:
        return None

    return {
        "url": url,
        "provider_id": first_value(item, LISTING_ID_PROBES),
        "name": first_value(item, LISTING_NAME_PROBES),
        "specialty": first_value(item, SPECIALTY_PROBES),
        "location": _location(item),
        "rating": _numeric_rating(item),
        "review_count": first_value(item, REVIEW_COUNT_PROBES, convert=to_count),
    }


def extract_listing_candidates(data: Any, base_url: str = DEFAULT_BASE_URL) -> List[Dict[str, Any]]:
    """
    Find profile summaries in a listing payload.

    Any key whose lowercase form contains a likely list name and whose value
    is a list contributes its first elements. Results are deduplicated by URL
    in discovery order.
    """
    out: List[Dict[str, Any]] = []
    seen_urls = set()

    for obj in walk_json(data):
        for key, value in obj.items():
            if not isinstance(value, list) or not value:
                continue
            lowered = str(key).lower()
            if not any(name in lowered for name in LIKELY_LIST_KEYS):
                continue
            for item in value[:MAX_LIST_ITEMS]:
                normalized = normalize_listing_item(item, base_url)
                if not normalized or normalized["url"] in seen_urls:
                    continue
                seen_urls.add(normalized["url"])
                out.append(normalized)

    return out


def score_profile_object(obj: Dict[str, Any]) -> int:
    """Score how much a mapping looks like a full profile; 0 means not one."""
    name = next((obj[k] for k in PROFILE_NAME_PROBES if obj.get(k)), None)
    if not isinstance(name, str) or len(name.strip()) < MIN_NAME_LENGTH:
        return 0

    score = 1
    if any(obj.get(k) for k in PHONE_PROBES):
        score += 2
    if any(obj.get(k) for k in ("address", "locations", "location")):
        score += 1
    if any(obj.get(k) for k in BIO_PROBES):
        score += 1
    if any(obj.get(k) for k in ("aggregateRating", "rating", "averageRating")):
        score += 1
    if any(obj.get(k) for k in ("specialty", "specialties", "medicalSpecialty")):
        score += 1
    return score


def best_profile_object(data: Any) -> Optional[Dict[str, Any]]:
    """Pick the highest scoring mapping; ties keep the first one visited."""
    best = None
    best_score = 0
    for obj in walk_json(data):
        score = score_profile_object(obj)
        if score > best_score:
            best_score = score
            best = obj
    return best


def normalize_profile_object(obj: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Map a profile mapping into record fields. Missing fields are None or empty."""
    if not isinstance(obj, dict):
        return {}

    address_obj = obj.get("address") if isinstance(obj.get("address"), dict) else {}
    city = clean_text(address_obj.get("city") or address_obj.get("addressLocality") or obj.get("city"))
    state = clean_text(address_obj.get("state") or address_obj.get("addressRegion") or obj.get("state"))

    specialties = _text_list(obj.get("specialties")) if isinstance(obj.get("specialties"), list) else []
    specialty = (
        first_value(obj, ("specialty", "primarySpecialty", ("medicalSpecialty", "name")))
        or (specialties[0] if specialties else None)
    )

    address = None
    if city or state:
        address = {
            "street": clean_text(address_obj.get("street") or address_obj.get("streetAddress")),
            "city": city,
            "state": state,
            "zip": clean_text(address_obj.get("zip") or address_obj.get("postalCode")),
        }

    return {
        "name": first_value(obj, PROFILE_NAME_PROBES),
        "provider_id": first_value(obj, PROFILE_ID_PROBES),
        "specialty": specialty,
        "specialties": specialties,
        "bio": first_value(obj, BIO_PROBES),
        "phone": first_value(obj, PHONE_PROBES),
        "email": clean_text(obj.get("email")),
        "website": first_value(obj, WEBSITE_PROBES),
        "rating": _numeric_rating(obj),
        "review_count": first_value(obj, REVIEW_COUNT_PROBES, convert=to_count),
        "address": address,
        "location": f"{city}, {state}" if city and state else None,
        "image": first_value(obj, IMAGE_PROBES),
        "education": _text_list(obj.get("education")),
        "certifications": _text_list(obj.get("certifications")),
        "accepted_insurance": _text_list(obj.get("acceptedInsurance")),
    }


def has_profile_content(fields: Dict[str, Any]) -> bool:
    """A detail payload counts as found when it names, calls or locates someone."""
    return bool(fields.get("name") or fields.get("phone") or fields.get("address"))
