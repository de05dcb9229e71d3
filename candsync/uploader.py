import asyncio
from typing import Callable, Iterator, List, Optional, Tuple

from loguru import logger

from candsync.clients import EndpointClient
from candsync.config import BATCH_SIZE, NICKNAME
from candsync.models import Candidate, ConfirmedPairing, Nomination, UploadReport
from candsync.store import CandidateStore

StatusCallback = Callable[[str], None]


def batch_iter(items: List[Nomination], batch_size: int) -> Iterator[Tuple[int, List[Nomination]]]:
    """
    Yield start index and slices of size `batch_size` for batched processing.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    n = len(items)
    for i in range(0, n, batch_size):
        yield i, items[i:i + batch_size]


def cached_entry_for(nomination: Nomination) -> Candidate:
    """Cache record derived from an uploaded nomination."""
    return Candidate(
        title=nomination.title,
        description=nomination.description,
        lat=nomination.lat,
        lng=nomination.lng,
        status=nomination.normalized_state,
    )


async def upload_in_batches(
    to_upload: List[Nomination],
    pairings: List[ConfirmedPairing],
    store: CandidateStore,
    client: EndpointClient,
    endpoint: str,
    nickname: str = NICKNAME,
    on_status: Optional[StatusCallback] = None,
    batch_size: int = BATCH_SIZE,
) -> UploadReport:
    """
    Upload nominations in sequential batches of concurrent requests and apply
    confirmed supersessions.

    Args:
        to_upload (List[Nomination]): Nominations classified as new or changed, in order.
        pairings (List[ConfirmedPairing]): Operator-confirmed supersessions.
        store (CandidateStore): Cache to mutate and persist.
        client (EndpointClient): Endpoint client.
        endpoint (str): Endpoint URL.
        nickname (str): Submitter identity sent with each record.
        on_status: Receives operator-facing progress strings.
        batch_size (int): Requests in flight per batch.

    Returns:
        UploadReport: Attempted/uploaded counts plus failed and superseded IDs.
    """
    report = UploadReport(attempted=len(to_upload))
    total = len(to_upload)
    emit = on_status or (lambda msg: None)

    async def upload_task(position: int, n: Nomination) -> bool:
        try:
            emit(f"Uploading {position}/{total}: {n.title}")
            await client.upload_one(n, endpoint, nickname)
        except Exception as e:
            logger.error(f"❌ Failed to upload: {n.title} ({n.id}): {e}")
            report.failed_ids.append(n.id)
            return False

        for pairing in pairings:
            if pairing.new_nomination_id != n.id:
                continue
            if not store.remove(pairing.potential_id):
                continue
            client.request_deletion(pairing.potential_id, endpoint)
            report.superseded_ids.append(pairing.potential_id)
        store.put(n.id, cached_entry_for(n))
        return True

    try:
        for start_idx, batch in batch_iter(to_upload, batch_size):
            logger.debug(f"📦 Uploading batch {start_idx + 1}..{start_idx + len(batch)} of {total}")
            results = await asyncio.gather(
                *[upload_task(start_idx + offset + 1, n) for offset, n in enumerate(batch)]
            )
            report.uploaded += sum(1 for ok in results if ok)
    finally:
        # removals already sent upstream are persisted even on interruption
        store.save()

    emit(f"Upload complete. {report.uploaded} uploaded.")
    logger.info(f"Uploaded {report.uploaded}/{report.attempted} nominations")
    return report
