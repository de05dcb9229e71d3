"""
Bidirectional mapping between internal candidate statuses and the remote
endpoint's status vocabulary.
"""
from typing import Dict, Optional

from candsync.models import CandidateStatus

INTERNAL_TO_REMOTE: Dict[str, str] = {
    CandidateStatus.LIVE.value: "lightship-live",
    CandidateStatus.PROVISIONAL.value: "provisional",
    CandidateStatus.RETIRED.value: "retired",
    CandidateStatus.POTENTIAL.value: "potential",
}

REMOTE_TO_INTERNAL: Dict[str, str] = {v: k for k, v in INTERNAL_TO_REMOTE.items()}

DELETE_STATUS = "delete"


def to_remote(status: str) -> str:
    """Internal status -> endpoint token. Unknown statuses pass through unchanged."""
    return INTERNAL_TO_REMOTE.get(status, status)


def from_remote(status: str) -> Optional[str]:
    """Endpoint token -> internal status, or None if the endpoint status is not recognized."""
    return REMOTE_TO_INTERNAL.get(status)
