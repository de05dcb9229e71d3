"""
Conflict resolution: the operator confirms which nearby potential candidate (if any)
a new nomination supersedes.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from loguru import logger

from candsync.models import ConfirmedPairing, MatchedCandidate, Nomination, is_finite_number


@dataclass
class MatchOption:
    potential_id: str
    title: str
    label: str
    distance_m: float


@dataclass
class MatchPrompt:
    """One new nomination and the potentials it may supersede (nearest first)."""
    nomination_id: str
    nomination_title: str
    options: List[MatchOption] = field(default_factory=list)
    default_index: int = 0


# nomination id -> chosen option index (None = no selection)
Chooser = Callable[[List[MatchPrompt]], Awaitable[Dict[str, Optional[int]]]]


def format_coordinate(value) -> str:
    """Five decimal places, or "N/A" for anything non-finite."""
    if not is_finite_number(value):
        return "N/A"
    return f"{float(value):.5f}"


def build_prompts(
    matches: Dict[str, List[MatchedCandidate]],
    nominations: List[Nomination],
) -> List[MatchPrompt]:
    """
    Build the operator-facing prompts for every nomination in the match mapping.

    Args:
        matches: New-nomination id -> matched potentials.
        nominations: Live nominations, used for titles.

    Returns:
        List[MatchPrompt]: One prompt per nomination with at least one match.
    """
    titles = {n.id: n.title for n in nominations}
    prompts = []
    for nid, matched in matches.items():
        if not matched:
            continue
        # sorted() is stable, so equal distances keep the engine's order
        ordered = sorted(matched, key=lambda m: m.distance_m)
        options = [
            MatchOption(
                potential_id=m.id,
                title=m.candidate.title,
                label=(
                    f"{m.candidate.title} "
                    f"({format_coordinate(m.candidate.lat)}, {format_coordinate(m.candidate.lng)})"
                ),
                distance_m=m.distance_m,
            )
            for m in ordered
        ]
        prompts.append(MatchPrompt(nomination_id=nid, nomination_title=titles.get(nid, nid), options=options))
    return prompts


def pairings_from_choices(
    prompts: List[MatchPrompt],
    choices: Dict[str, Optional[int]],
) -> List[ConfirmedPairing]:
    """At most one pairing per nomination; missing or out-of-range choices are dropped."""
    pairings = []
    for prompt in prompts:
        idx = choices.get(prompt.nomination_id)
        if idx is None or not (0 <= idx < len(prompt.options)):
            continue
        pairings.append(
            ConfirmedPairing(
                new_nomination_id=prompt.nomination_id,
                potential_id=prompt.options[idx].potential_id,
            )
        )
    return pairings


async def accept_defaults(prompts: List[MatchPrompt]) -> Dict[str, Optional[int]]:
    """Chooser that confirms the default (nearest) option everywhere."""
    return {p.nomination_id: p.default_index for p in prompts}


async def resolve_conflicts(prompts: List[MatchPrompt], chooser: Chooser) -> List[ConfirmedPairing]:
    """
    Suspend until the operator confirms a selection.

    The chooser runs as its own task. A dismissed chooser (its task ends
    cancelled) yields no pairings and uploads proceed unmatched. Cancelling the
    caller cancels the chooser and propagates.

    Args:
        prompts: Prompts from `build_prompts`.
        chooser: Operator callback returning nomination id -> option index.

    Returns:
        List[ConfirmedPairing]: Confirmed pairings (possibly empty).
    """
    if not prompts:
        return []

    task = asyncio.ensure_future(chooser(prompts))
    try:
        await asyncio.wait({task})
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task.cancelled():
        logger.info("Match confirmation dismissed, uploading without supersession")
        return []

    choices = task.result()
    pairings = pairings_from_choices(prompts, choices or {})
    logger.debug(f"🤝 {len(pairings)} pairing(s) confirmed out of {len(prompts)} prompt(s)")
    return pairings
