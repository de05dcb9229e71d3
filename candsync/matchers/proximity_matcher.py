from typing import Dict, List

from candsync.config import NEARBY_WINDOW_DEG
from candsync.geo import distance, haversine_m
from candsync.models import Candidate, MatchedCandidate


def find_potential_matches(
    point,
    candidates: Dict[str, Candidate],
    threshold_m: float,
) -> List[MatchedCandidate]:
    """
    Collect every `potential` candidate within `threshold_m` meters of a point.

    Args:
        point: Anything exposing `lat` and `lng` (typically a Nomination).
        candidates: ID-keyed candidate mapping.
        threshold_m: Inclusive matching radius in meters.

    Returns:
        List[MatchedCandidate]: Matches in mapping iteration order; ties are not broken here.
    """
    matches = []
    for cid, cand in candidates.items():
        if not cand.is_potential:
            continue
        d = distance(cand, point)
        if d <= threshold_m:
            matches.append(MatchedCandidate(id=cid, candidate=cand, distance_m=d))
    return matches


def find_nearby_candidates(
    lat: float,
    lng: float,
    candidates: Dict[str, Candidate],
    window_deg: float = NEARBY_WINDOW_DEG,
) -> List[MatchedCandidate]:
    """Potential candidates inside a +/- `window_deg` box around a nominated coordinate."""
    nearby = []
    for cid, cand in candidates.items():
        if not cand.is_potential:
            continue
        if abs(cand.lat - lat) <= window_deg and abs(cand.lng - lng) <= window_deg:
            d = haversine_m(cand.lat, cand.lng, lat, lng)
            nearby.append(MatchedCandidate(id=cid, candidate=cand, distance_m=d))
    return nearby
