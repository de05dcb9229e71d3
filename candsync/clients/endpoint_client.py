"""
Singleton client for the remote record-keeping endpoint, rate limited with aiolimiter.
"""
import asyncio
from typing import Dict, Optional, Set

from aiohttp import ClientError, ClientSession, ClientTimeout
from aiolimiter import AsyncLimiter
from loguru import logger

from candsync.config import CONCURRENCY, FETCH_TIMEOUT_S, NICKNAME, UPLOAD_TIMEOUT_S
from candsync.models import Candidate, Nomination
from candsync.status_map import DELETE_STATUS, from_remote, to_remote


class EndpointClient:
    """
    Singleton client for the candidate endpoint.
    GET returns the authoritative snapshot, POST upserts or deletes one record.
    """
    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if not EndpointClient._initialized:
            self.rate_limiter = AsyncLimiter(max_rate=CONCURRENCY, time_period=1.0)
            self._session: Optional[ClientSession] = None
            self._pending_deletes: Set[asyncio.Task] = set()
            EndpointClient._initialized = True

    async def _get_session(self) -> ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = ClientSession()
        return self._session

    async def fetch_snapshot(self, endpoint: str) -> Optional[Dict[str, Candidate]]:
        """
        Download the authoritative candidate list.

        Args:
            endpoint: Endpoint URL.

        Returns:
            Fresh ID-keyed mapping of candidates with recognized statuses, or None if
            the request, the JSON body or any record is unusable.
        """
        async with self.rate_limiter:
            session = await self._get_session()
            try:
                async with session.get(endpoint, timeout=ClientTimeout(total=FETCH_TIMEOUT_S)) as resp:
                    resp.raise_for_status()
                    data = await resp.json(content_type=None)
            except asyncio.TimeoutError:
                logger.error(f"⏱️ Candidate download timed out after {FETCH_TIMEOUT_S}s")
                return None
            except (ClientError, ValueError) as e:
                logger.error(f"❌ Failed to load candidates from endpoint: {e}")
                return None

        if not isinstance(data, list):
            logger.error(f"❌ Endpoint returned {type(data).__name__}, expected a JSON array")
            return None

        mapped: Dict[str, Candidate] = {}
        try:
            for rec in data:
                if not isinstance(rec, dict):
                    continue
                status = from_remote(str(rec.get("status")))
                if status is None:
                    continue
                mapped[str(rec["id"])] = Candidate.from_dict({**rec, "status": status})
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"❌ Malformed candidate record from endpoint: {e!r}")
            return None

        logger.debug(f"✅ Downloaded {len(mapped)} candidates ({len(data)} records)")
        return mapped

    def build_upload_form(self, nomination: Nomination, nickname: str = NICKNAME) -> Dict[str, str]:
        """Serialize a nomination into the endpoint's form fields."""
        return {
            "id": nomination.id,
            "title": nomination.title or "",
            "description": nomination.description or "",
            "lat": str(nomination.lat),
            "lng": str(nomination.lng),
            "status": to_remote(nomination.normalized_state),
            "candidateimageurl": nomination.first_image_url,
            "nickname": nickname or "lightship",
            "submitteddate": nomination.submitted_date,
        }

    async def upload_one(self, nomination: Nomination, endpoint: str, nickname: str = NICKNAME) -> None:
        """
        Upsert one nomination on the endpoint. Raises on any failure so the
        caller can account for it per item.
        """
        form = self.build_upload_form(nomination, nickname)
        async with self.rate_limiter:
            session = await self._get_session()
            try:
                async with session.post(
                    endpoint,
                    data=form,
                    timeout=ClientTimeout(total=UPLOAD_TIMEOUT_S),
                ) as resp:
                    resp.raise_for_status()
            except Exception as e:
                logger.debug(f"⚠️ Upload POST failed for '{nomination.title}': {e}")
                raise

    async def _delete(self, cid: str, endpoint: str) -> None:
        try:
            async with self.rate_limiter:
                session = await self._get_session()
                async with session.post(
                    endpoint,
                    data={"status": DELETE_STATUS, "id": cid},
                    timeout=ClientTimeout(total=UPLOAD_TIMEOUT_S),
                ) as resp:
                    resp.raise_for_status()
            logger.debug(f"🗑️ Deleted potential {cid} on endpoint")
        except Exception as e:
            logger.error(f"Failed to send delete for {cid}: {e}")

    def request_deletion(self, cid: str, endpoint: Optional[str]) -> Optional[asyncio.Task]:
        """
        Fire-and-forget deletion marker for one ID. Never raises, never retries.
        Must be called from a running event loop.
        """
        if not endpoint:
            logger.debug(f"No endpoint configured, skipping delete for {cid}")
            return None
        task = asyncio.create_task(self._delete(cid, endpoint))
        self._pending_deletes.add(task)
        task.add_done_callback(self._pending_deletes.discard)
        return task

    async def drain(self) -> None:
        """Wait for outstanding deletion requests."""
        if self._pending_deletes:
            await asyncio.gather(*list(self._pending_deletes), return_exceptions=True)

    async def close(self):
        """Drain deletions and close the aiohttp session."""
        await self.drain()
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
