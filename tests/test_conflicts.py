"""
Tests for the conflict resolution protocol.
"""

import asyncio
import math

import pytest

from candsync.conflicts import (
    accept_defaults,
    build_prompts,
    format_coordinate,
    pairings_from_choices,
    resolve_conflicts,
)
from candsync.models import Candidate, ConfirmedPairing, MatchedCandidate, Nomination


def matched(cid, title, distance_m, lat=10.0, lng=20.0):
    c = Candidate(title=title, description="", lat=lat, lng=lng, status="potential")
    return MatchedCandidate(id=cid, candidate=c, distance_m=distance_m)


NOMINATIONS = [
    Nomination(id="N1", title="New fountain", lat=10.0, lng=20.0),
    Nomination(id="N2", title="New mural", lat=11.0, lng=21.0),
]


class TestPrompts:
    """Prompt construction."""

    def test_options_sorted_nearest_first(self):
        matches = {"N1": [matched("far", "Far", 8.0), matched("near", "Near", 2.0)]}
        prompts = build_prompts(matches, NOMINATIONS)
        assert len(prompts) == 1
        assert prompts[0].nomination_title == "New fountain"
        assert [o.potential_id for o in prompts[0].options] == ["near", "far"]
        assert prompts[0].default_index == 0

    def test_ties_keep_engine_order(self):
        matches = {"N1": [matched("b", "B", 3.0), matched("a", "A", 3.0)]}
        prompts = build_prompts(matches, NOMINATIONS)
        assert [o.potential_id for o in prompts[0].options] == ["b", "a"]

    def test_label_formats_five_decimals(self):
        matches = {"N1": [matched("p", "Statue", 1.0, lat=10.123456789, lng=-20.5)]}
        label = build_prompts(matches, NOMINATIONS)[0].options[0].label
        assert label == "Statue (10.12346, -20.50000)"

    def test_non_finite_coordinates_render_na(self):
        assert format_coordinate(math.nan) == "N/A"
        assert format_coordinate(math.inf) == "N/A"
        assert format_coordinate(None) == "N/A"
        assert format_coordinate("12.3") == "12.30000"


class TestResolution:
    """Choices -> pairings."""

    def test_one_pairing_per_nomination(self):
        matches = {
            "N1": [matched("p1", "P1", 1.0), matched("p2", "P2", 2.0)],
            "N2": [matched("p3", "P3", 1.0)],
        }
        prompts = build_prompts(matches, NOMINATIONS)
        pairings = pairings_from_choices(prompts, {"N1": 1, "N2": None})
        assert pairings == [ConfirmedPairing(new_nomination_id="N1", potential_id="p2")]

    def test_out_of_range_choice_dropped(self):
        prompts = build_prompts({"N1": [matched("p1", "P1", 1.0)]}, NOMINATIONS)
        assert pairings_from_choices(prompts, {"N1": 5}) == []

    @pytest.mark.asyncio
    async def test_accept_defaults_picks_nearest(self):
        matches = {"N1": [matched("far", "Far", 9.0), matched("near", "Near", 1.0)]}
        prompts = build_prompts(matches, NOMINATIONS)
        pairings = await resolve_conflicts(prompts, accept_defaults)
        assert pairings == [ConfirmedPairing(new_nomination_id="N1", potential_id="near")]

    @pytest.mark.asyncio
    async def test_empty_prompts_do_not_call_chooser(self):
        async def chooser(prompts):
            raise AssertionError("should not be called")

        assert await resolve_conflicts([], chooser) == []

    @pytest.mark.asyncio
    async def test_cancelled_chooser_yields_no_pairings(self):
        prompts = build_prompts({"N1": [matched("p1", "P1", 1.0)]}, NOMINATIONS)

        async def dismissed(prompts):
            raise asyncio.CancelledError()

        assert await resolve_conflicts(prompts, dismissed) == []

    @pytest.mark.asyncio
    async def test_waits_for_operator_confirmation(self):
        prompts = build_prompts({"N1": [matched("p1", "P1", 1.0)]}, NOMINATIONS)
        confirmed = asyncio.Event()

        async def operator(prompts):
            await confirmed.wait()
            return {"N1": 0}

        pending = asyncio.ensure_future(resolve_conflicts(prompts, operator))
        await asyncio.sleep(0.01)
        assert not pending.done()

        confirmed.set()
        assert await pending == [ConfirmedPairing(new_nomination_id="N1", potential_id="p1")]

    @pytest.mark.asyncio
    async def test_cancelling_caller_cancels_chooser_and_propagates(self):
        prompts = build_prompts({"N1": [matched("p1", "P1", 1.0)]}, NOMINATIONS)
        opened = asyncio.Event()
        chooser_cancelled = asyncio.Event()

        async def operator(prompts):
            opened.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                chooser_cancelled.set()
                raise

        pending = asyncio.ensure_future(resolve_conflicts(prompts, operator))
        await opened.wait()
        pending.cancel()

        with pytest.raises(asyncio.CancelledError):
            await pending
        assert chooser_cancelled.is_set()
