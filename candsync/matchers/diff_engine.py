# candsync/matchers/diff_engine.py

from typing import Dict, List

from loguru import logger

from candsync.matchers.proximity_matcher import find_potential_matches
from candsync.models import (
    REASON_NEW,
    REASON_STATUS_CHANGED,
    Candidate,
    Classification,
    DiffResult,
    Nomination,
)


def classify_nomination(nomination: Nomination, prev: Candidate = None) -> Classification:
    """
    Decide whether a nomination needs uploading.

    Args:
        nomination (Nomination): Live nomination.
        prev (Candidate): Cached record with the same ID, if any.

    Returns:
        Classification or None: None when the cached status already matches.
    """
    if prev is None:
        return Classification(id=nomination.id, title=nomination.title, reason=REASON_NEW)

    current = nomination.normalized_state
    if prev.status != current:
        return Classification(
            id=nomination.id,
            title=nomination.title,
            reason=REASON_STATUS_CHANGED,
            old_status=prev.status,
            new_status=current,
        )
    return None


def diff_and_match(
    candidates: Dict[str, Candidate],
    nominations: List[Nomination],
    threshold_m: float,
) -> DiffResult:
    """
    Classify live nominations against the cache and link genuinely new ones
    to nearby potential candidates.

    Args:
        candidates (Dict[str, Candidate]): Current cache snapshot.
        nominations (List[Nomination]): Live nominations, in display order.
        threshold_m (float): Inclusive matching radius in meters.

    Returns:
        DiffResult: Nominations to upload (input order), their classifications,
                    and new-nomination-id -> nearby potentials.
    """
    result = DiffResult()

    for n in nominations:
        prev = candidates.get(n.id)
        classification = classify_nomination(n, prev)
        if classification is not None:
            result.to_upload.append(n)
            result.classifications.append(classification)

        # Status changes on known nominations are never matched
        if prev is None:
            matches = find_potential_matches(n, candidates, threshold_m)
            if matches:
                result.matches[n.id] = matches

    logger.debug(
        f"🔎 Diff: {len(nominations)} nominations, {len(result.to_upload)} to upload, "
        f"{len(result.matches)} with nearby potentials (<= {threshold_m} m)"
    )
    return result
