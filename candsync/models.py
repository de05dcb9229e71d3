"""
Typed data models for the candidate synchronization engine.
All data structures used throughout the codebase should be defined here.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class CandidateStatus(str, Enum):
    LIVE = "live"
    PROVISIONAL = "provisional"
    RETIRED = "retired"
    POTENTIAL = "potential"


def _to_float(value: Any) -> float:
    """Coerce a numeric or numeric-string coordinate to float."""
    if isinstance(value, str):
        value = value.strip()
    return float(value)


@dataclass
class Candidate:
    """Cached point of interest, stored keyed by its ID."""
    title: str
    description: str
    lat: float
    lng: float
    status: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Candidate":
        """Build a candidate from a persisted/remote record. Raises on malformed input."""
        if not isinstance(data, dict):
            raise ValueError(f"Candidate record must be an object, got {type(data).__name__}")
        return cls(
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            lat=_to_float(data["lat"]),
            lng=_to_float(data["lng"]),
            status=str(data["status"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "lat": self.lat,
            "lng": self.lng,
            "status": self.status,
        }

    @property
    def is_potential(self) -> bool:
        return self.status == CandidateStatus.POTENTIAL.value


@dataclass
class Nomination:
    """Nomination currently visible in the host application."""
    id: str
    title: str
    lat: float
    lng: float
    state: str = ""
    description: str = ""
    images: List[Dict[str, Any]] = field(default_factory=list)
    discovered_timestamp_ms: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Nomination":
        """Build a nomination from the host's camelCase record."""
        ts = data.get("discoveredTimestampMs", data.get("discovered_timestamp_ms"))
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            lat=_to_float(data["lat"]),
            lng=_to_float(data["lng"]),
            state=str(data.get("state") or ""),
            images=list(data.get("images") or []),
            discovered_timestamp_ms=int(ts) if ts not in (None, "") else None,
        )

    @property
    def normalized_state(self) -> str:
        return (self.state or "").lower()

    @property
    def first_image_url(self) -> str:
        if not self.images:
            return ""
        first = self.images[0]
        if isinstance(first, dict):
            return str(first.get("url") or "")
        return ""

    @property
    def submitted_date(self) -> str:
        """Discovery date as YYYY-MM-DD (UTC), or empty string if unknown."""
        if not self.discovered_timestamp_ms:
            return ""
        ts = datetime.fromtimestamp(int(self.discovered_timestamp_ms) / 1000.0, tz=timezone.utc)
        return ts.date().isoformat()


@dataclass
class Classification:
    """Why a nomination needs uploading."""
    id: str
    title: str
    reason: str  # "new" or "status changed"
    old_status: Optional[str] = None
    new_status: Optional[str] = None


REASON_NEW = "new"
REASON_STATUS_CHANGED = "status changed"


@dataclass
class MatchedCandidate:
    """A potential candidate within the matching threshold of a new nomination."""
    id: str
    candidate: Candidate
    distance_m: float


@dataclass
class ConfirmedPairing:
    """Operator-confirmed link between a new nomination and the potential it supersedes."""
    new_nomination_id: str
    potential_id: str


@dataclass
class DiffResult:
    """Output of the diff & match engine."""
    to_upload: List[Nomination] = field(default_factory=list)
    classifications: List[Classification] = field(default_factory=list)
    matches: Dict[str, List[MatchedCandidate]] = field(default_factory=dict)


@dataclass
class UploadReport:
    """Outcome of a batched upload pass."""
    attempted: int = 0
    uploaded: int = 0
    failed_ids: List[str] = field(default_factory=list)
    superseded_ids: List[str] = field(default_factory=list)


@dataclass
class Viewport:
    """Map viewport: center, zoom and pixel size."""
    center_lat: float
    center_lng: float
    zoom: float
    width: int
    height: int

    def key(self) -> str:
        """Rounded identity used to skip redundant redraws."""
        return "|".join([
            f"{self.center_lat:.5f}",
            f"{self.center_lng:.5f}",
            f"{self.zoom:.2f}",
            str(self.width),
            str(self.height),
        ])


@dataclass
class GeoBounds:
    sw_lat: float
    sw_lng: float
    ne_lat: float
    ne_lng: float

    def contains(self, lat: float, lng: float) -> bool:
        return self.sw_lat <= lat <= self.ne_lat and self.sw_lng <= lng <= self.ne_lng


@dataclass
class ScreenMarker:
    """A visible candidate with its pixel position in the viewport."""
    id: str
    candidate: Candidate
    x: float
    y: float


def is_finite_number(value: Any) -> bool:
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False
