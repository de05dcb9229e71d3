"""
One synchronization pass: fetch -> diff/match -> (optional) conflict resolution
-> batched upload.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from loguru import logger

from candsync.clients import EndpointClient
from candsync.config import MATCH_THRESHOLD_M, NICKNAME
from candsync.conflicts import build_prompts, resolve_conflicts
from candsync.matchers.diff_engine import diff_and_match
from candsync.models import (
    REASON_STATUS_CHANGED,
    Classification,
    ConfirmedPairing,
    MatchedCandidate,
    UploadReport,
)
from candsync.nomination_source import NominationSource
from candsync.operator import Operator
from candsync.store import CandidateStore
from candsync.uploader import upload_in_batches

MSG_NO_ENDPOINT = "Please set the endpoint URL"
MSG_NO_NOMINATIONS = "No nominations found to upload."
MSG_DOWNLOADING = "Downloading…"
MSG_DOWNLOAD_FAILED = "Failed to load candidates from endpoint."


@dataclass
class SyncSession:
    """Everything a finished pass hands to the presentation layer."""
    classifications: List[Classification] = field(default_factory=list)
    matches: Dict[str, List[MatchedCandidate]] = field(default_factory=dict)
    pairings: List[ConfirmedPairing] = field(default_factory=list)
    report: UploadReport = field(default_factory=UploadReport)

    def preview_lines(self) -> List[str]:
        """Numbered listing of pending uploads, as shown in the preview dialog."""
        replaced = {p.new_nomination_id: p.potential_id for p in self.pairings}
        lines = []
        for i, c in enumerate(self.classifications, start=1):
            detail = c.reason
            if c.reason == REASON_STATUS_CHANGED and c.old_status and c.new_status:
                detail += f": {c.old_status} → {c.new_status}"
            if c.id in replaced:
                detail += f", replaces potential: {replaced[c.id]}"
            lines.append(f"{i}. {c.title} ({detail})")
        return lines


async def refresh_candidates(
    store: CandidateStore,
    client: EndpointClient,
    operator: Operator,
    endpoint: Optional[str],
) -> bool:
    """
    Replace the cache with the endpoint's snapshot.

    Returns:
        bool: False when the endpoint is missing or the download failed; the
              store is left untouched in that case.
    """
    if not endpoint:
        operator.notice(MSG_NO_ENDPOINT)
        return False

    operator.status(MSG_DOWNLOADING)
    snapshot = await client.fetch_snapshot(endpoint)
    if snapshot is None:
        operator.status(MSG_DOWNLOAD_FAILED)
        return False

    store.save(snapshot)
    operator.status(f"Downloaded {len(snapshot)} candidates.")
    return True


async def run_sync_pass(
    source: NominationSource,
    store: CandidateStore,
    client: EndpointClient,
    operator: Operator,
    endpoint: Optional[str],
    threshold_m: float = MATCH_THRESHOLD_M,
    nickname: str = NICKNAME,
) -> Optional[SyncSession]:
    """
    Run a full synchronization pass.

    Args:
        source (NominationSource): Live nominations provider.
        store (CandidateStore): Candidate cache.
        client (EndpointClient): Endpoint client.
        operator (Operator): Status channel and match chooser.
        endpoint (str): Endpoint URL.
        threshold_m (float): Matching radius in meters.
        nickname (str): Submitter identity.

    Returns:
        SyncSession or None: None when the pass was aborted.
    """
    if not endpoint:
        operator.notice(MSG_NO_ENDPOINT)
        return None

    nominations = source.current_nominations()
    if not nominations:
        operator.notice(MSG_NO_NOMINATIONS)
        return None

    if not await refresh_candidates(store, client, operator, endpoint):
        return None

    diff = diff_and_match(store.snapshot(), nominations, threshold_m)
    session = SyncSession(classifications=diff.classifications, matches=diff.matches)

    if diff.matches:
        prompts = build_prompts(diff.matches, nominations)
        session.pairings = await resolve_conflicts(prompts, operator.choose_matches)

    session.report = await upload_in_batches(
        diff.to_upload,
        session.pairings,
        store,
        client,
        endpoint,
        nickname=nickname,
        on_status=operator.status,
    )
    logger.debug(f"Sync pass finished: {session.report}")
    return session
