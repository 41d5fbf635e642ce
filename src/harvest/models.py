"""
Data models shared across the acquisition and extraction layers.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class TargetKind(str, Enum):
    """What a fetch target points at."""
    LISTING = "listing"
    DETAIL = "detail"


class Channel(str, Enum):
    """Acquisition channel a response came through."""
    DATA_ENDPOINT = "data_endpoint"
    DOCUMENT = "document"
    BROWSER = "browser"


class CandidateSource(str, Enum):
    """Extractor family that produced a candidate.

    Declaration order is merge precedence, highest first.
    """
    DATA_ENDPOINT = "data_endpoint"
    EMBEDDED_METADATA = "embedded_metadata"
    DOM_HEURISTIC = "dom_heuristic"

    @property
    def priority(self) -> int:
        return list(CandidateSource).index(self)


@dataclass(frozen=True)
class FetchTarget:
    """A unit of acquisition work; url is canonical and the dedup key."""
    url: str
    kind: TargetKind = TargetKind.DETAIL
    seed: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass
class RawResponse:
    """A body plus where it came from."""
    status_code: int
    body: str
    channel: Channel
    url: str
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class Candidate:
    """Partial record fields produced by one extractor."""
    source: CandidateSource
    fields: Dict[str, Any]


@dataclass(frozen=True)
class ProfileRecord:
    """Final normalized record for one profile."""
    url: str
    name: Optional[str] = None
    provider_id: Optional[str] = None
    specialty: Optional[str] = None
    specialties: List[str] = field(default_factory=list)
    location: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    bio: Optional[str] = None
    image: Optional[str] = None
    address: Dict[str, Optional[str]] = field(default_factory=dict)
    education: List[str] = field(default_factory=list)
    certifications: List[str] = field(default_factory=list)
    accepted_insurance: List[str] = field(default_factory=list)
    provenance: str = ""
    fetched_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "url": self.url,
            "provider_id": self.provider_id,
            "name": self.name,
            "specialty": self.specialty,
            "specialties": list(self.specialties),
            "location": self.location,
            "phone": self.phone,
            "email": self.email,
            "website": self.website,
            "rating": self.rating,
            "review_count": self.review_count,
            "bio": self.bio,
            "image": self.image,
            "address": dict(self.address),
            "education": list(self.education),
            "certifications": list(self.certifications),
            "accepted_insurance": list(self.accepted_insurance),
            "provenance": self.provenance,
            "fetched_at": self.fetched_at,
        }


# Field names a candidate may carry, in record order
RECORD_FIELDS = [
    "provider_id", "name", "specialty", "specialties", "location", "phone",
    "email", "website", "rating", "review_count", "bio", "image", "address",
    "education", "certifications", "accepted_insurance",
]


@dataclass
class RunStats:
    """Counters for one run."""
    listing_pages: int = 0
    listing_candidates: int = 0
    detail_pages: int = 0
    data_endpoint_hits: int = 0
    document_hits: int = 0
    browser_hits: int = 0
    bootstraps: int = 0
    blocked: int = 0
    errors: int = 0
    saved: int = 0

    def record_hit(self, channel: Channel) -> None:
        if channel == Channel.DATA_ENDPOINT:
            self.data_endpoint_hits += 1
        elif channel == Channel.DOCUMENT:
            self.document_hits += 1
        elif channel == Channel.BROWSER:
            self.browser_hits += 1

    def to_dict(self) -> Dict[str, int]:
        return {
            "listing_pages": self.listing_pages,
            "listing_candidates": self.listing_candidates,
            "detail_pages": self.detail_pages,
            "data_endpoint_hits": self.data_endpoint_hits,
            "document_hits": self.document_hits,
            "browser_hits": self.browser_hits,
            "bootstraps": self.bootstraps,
            "blocked": self.blocked,
            "errors": self.errors,
            "saved": self.saved,
        }


@dataclass
class RunSummary:
    """Outcome of a run, as written to summary.json."""
    success: bool
    message: str
    stats: RunStats
    runtime_seconds: float
    failed_urls: List[str] = field(default_factory=list)
    remediation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "stats": self.stats.to_dict(),
            "runtime_seconds": round(self.runtime_seconds, 2),
            "failed_urls": list(self.failed_urls),
            "remediation": self.remediation,
        }
