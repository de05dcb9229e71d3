import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from candsync.clients import EndpointClient
from candsync.models import Candidate, Nomination
from candsync.nomination_source import StaticNominationSource
from candsync.store import CandidateStore
from candsync.sync_pass import SyncSession, refresh_candidates, run_sync_pass
from candsync.models import Classification, ConfirmedPairing

ENDPOINT = "https://example.test/exec"


class MemoryStorage:
    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def remove(self, key):
        self.data.pop(key, None)


class RecordingOperator:
    """Operator that records messages and confirms a fixed choice per nomination."""

    def __init__(self, choices=None):
        self.statuses = []
        self.notices = []
        self.prompts = None
        self.choices = choices

    def status(self, message):
        self.statuses.append(message)

    def notice(self, message):
        self.notices.append(message)

    async def choose_matches(self, prompts):
        self.prompts = prompts
        if self.choices is not None:
            return self.choices
        return {p.nomination_id: p.default_index for p in prompts}


def make_client(snapshot):
    client = MagicMock(spec=EndpointClient)
    client.fetch_snapshot = AsyncMock(return_value=snapshot)
    client.upload_one = AsyncMock(return_value=None)
    return client


@pytest.mark.asyncio
async def test_sync_pass_matches_uploads_and_supersedes():
    """
    Full pass: a new nomination next to a cached potential is matched, confirmed,
    uploaded, and the potential is removed locally and remotely.
    """
    snapshot = {
        "P1": Candidate(title="Old", description="", lat=10.0, lng=20.0, status="potential"),
        "K1": Candidate(title="Known", description="", lat=1.0, lng=1.0, status="provisional"),
    }
    nominations = [
        Nomination(id="N1", title="New", lat=10.00005, lng=20.00005, state="Live"),
        Nomination(id="K1", title="Known", lat=1.0, lng=1.0, state="live"),
    ]
    client = make_client(snapshot)
    operator = RecordingOperator()
    store = CandidateStore(MemoryStorage())

    session = await run_sync_pass(
        StaticNominationSource(nominations), store, client, operator, ENDPOINT, threshold_m=10,
    )

    assert isinstance(session, SyncSession)
    assert [(c.id, c.reason) for c in session.classifications] == [("N1", "new"), ("K1", "status changed")]
    assert [m.id for m in session.matches["N1"]] == ["P1"]
    assert session.pairings == [ConfirmedPairing(new_nomination_id="N1", potential_id="P1")]
    assert session.report.uploaded == 2
    assert client.upload_one.await_count == 2

    assert "P1" not in store
    client.request_deletion.assert_called_once_with("P1", ENDPOINT)
    assert store.get("K1").status == "live"

    assert operator.statuses[0] == "Downloading…"
    assert operator.statuses[-1] == "Upload complete. 2 uploaded."
    assert session.preview_lines() == [
        "1. New (new, replaces potential: P1)",
        "2. Known (status changed: provisional → live)",
    ]


@pytest.mark.asyncio
async def test_empty_nominations_abort_without_network():
    client = make_client({})
    operator = RecordingOperator()

    session = await run_sync_pass(
        StaticNominationSource([]), CandidateStore(MemoryStorage()), client, operator, ENDPOINT,
    )

    assert session is None
    assert operator.notices == ["No nominations found to upload."]
    client.fetch_snapshot.assert_not_called()
    client.upload_one.assert_not_called()


@pytest.mark.asyncio
async def test_missing_endpoint_aborts_without_network():
    client = make_client({})
    operator = RecordingOperator()
    source = StaticNominationSource([Nomination(id="N1", title="x", lat=1, lng=1)])

    assert await run_sync_pass(source, CandidateStore(MemoryStorage()), client, operator, "") is None
    assert operator.notices == ["Please set the endpoint URL"]
    client.fetch_snapshot.assert_not_called()


@pytest.mark.asyncio
async def test_fetch_failure_leaves_store_untouched():
    client = make_client(None)
    operator = RecordingOperator()
    store = CandidateStore(MemoryStorage())
    existing = {"P1": Candidate(title="Old", description="", lat=1.0, lng=1.0, status="potential")}
    store.save(existing)
    source = StaticNominationSource([Nomination(id="N1", title="x", lat=1, lng=1)])

    session = await run_sync_pass(source, store, client, operator, ENDPOINT)

    assert session is None
    assert store.snapshot() == existing
    assert operator.statuses[-1] == "Failed to load candidates from endpoint."
    client.upload_one.assert_not_called()


@pytest.mark.asyncio
async def test_unconfirmed_match_still_uploads_without_supersession():
    snapshot = {"P1": Candidate(title="Old", description="", lat=10.0, lng=20.0, status="potential")}
    client = make_client(snapshot)
    operator = RecordingOperator(choices={"N1": None})
    store = CandidateStore(MemoryStorage())
    source = StaticNominationSource([Nomination(id="N1", title="New", lat=10.00005, lng=20.00005)])

    session = await run_sync_pass(source, store, client, operator, ENDPOINT)

    assert session.pairings == []
    assert session.report.uploaded == 1
    assert "P1" in store
    client.request_deletion.assert_not_called()


@pytest.mark.asyncio
async def test_second_pass_is_idempotent():
    """Nominations already cached with the same status are not re-uploaded."""
    client = make_client({"N1": Candidate(title="New", description="", lat=1.0, lng=1.0, status="live")})
    operator = RecordingOperator()
    source = StaticNominationSource([Nomination(id="N1", title="New", lat=1.0, lng=1.0, state="LIVE")])

    session = await run_sync_pass(source, CandidateStore(MemoryStorage()), client, operator, ENDPOINT)

    assert session.classifications == []
    assert session.report.attempted == 0
    client.upload_one.assert_not_called()
    assert operator.prompts is None


@pytest.mark.asyncio
async def test_refresh_replaces_and_persists():
    storage = MemoryStorage()
    store = CandidateStore(storage)
    store.save({"stale": Candidate(title="Stale", description="", lat=0, lng=0, status="potential")})
    fresh = {"a": Candidate(title="A", description="", lat=1.0, lng=2.0, status="live")}
    operator = RecordingOperator()

    assert await refresh_candidates(store, make_client(fresh), operator, ENDPOINT) is True

    assert CandidateStore(storage).load() == fresh
    assert operator.statuses[-1] == "Downloaded 1 candidates."


def test_preview_without_pairings():
    session = SyncSession(classifications=[Classification(id="X", title="Thing", reason="new")])
    assert session.preview_lines() == ["1. Thing (new)"]


class BlockingOperator(RecordingOperator):
    """Operator whose match prompt never gets an answer."""

    def __init__(self):
        super().__init__()
        self.prompt_open = asyncio.Event()

    async def choose_matches(self, prompts):
        self.prompts = prompts
        self.prompt_open.set()
        await asyncio.Event().wait()


@pytest.mark.asyncio
async def test_cancelling_pass_during_prompt_uploads_nothing():
    snapshot = {"P1": Candidate(title="Old", description="", lat=10.0, lng=20.0, status="potential")}
    client = make_client(snapshot)
    operator = BlockingOperator()
    store = CandidateStore(MemoryStorage())
    source = StaticNominationSource([Nomination(id="N1", title="New", lat=10.00005, lng=20.00005)])

    task = asyncio.ensure_future(run_sync_pass(source, store, client, operator, ENDPOINT))
    await operator.prompt_open.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    client.upload_one.assert_not_awaited()
    client.request_deletion.assert_not_called()
    assert "P1" in store
