"""
Operator surface: status messages, blocking notices and match confirmation.
"""
import asyncio
from typing import Dict, List, Optional, Protocol

from loguru import logger

from candsync.conflicts import MatchPrompt


class Operator(Protocol):
    def status(self, message: str) -> None: ...

    def notice(self, message: str) -> None: ...

    async def choose_matches(self, prompts: List[MatchPrompt]) -> Dict[str, Optional[int]]: ...


class ConsoleOperator:
    """Terminal operator: status via the log, choices read from stdin."""

    def __init__(self, assume_defaults: bool = False):
        self.assume_defaults = assume_defaults
        self.last_status = ""

    def status(self, message: str) -> None:
        self.last_status = message
        logger.info(message)

    def notice(self, message: str) -> None:
        logger.warning(message)

    def _ask(self, prompt: MatchPrompt) -> Optional[int]:
        print(f"\nNew Nomination: {prompt.nomination_title}")
        for idx, option in enumerate(prompt.options):
            marker = "*" if idx == prompt.default_index else " "
            print(f"  {marker}[{idx + 1}] Potential: {option.label} ~{option.distance_m:.1f} m")
        answer = input(f"Select 1-{len(prompt.options)} (Enter = default, 0 = none): ").strip()
        if not answer:
            return prompt.default_index
        if answer.isdigit():
            choice = int(answer)
            if choice == 0:
                return None
            if 1 <= choice <= len(prompt.options):
                return choice - 1
        logger.warning(f"Unrecognized choice '{answer}', keeping default")
        return prompt.default_index

    def _ask_all(self, prompts: List[MatchPrompt]) -> Dict[str, Optional[int]]:
        print("\nPotential Matches Found")
        return {p.nomination_id: self._ask(p) for p in prompts}

    async def choose_matches(self, prompts: List[MatchPrompt]) -> Dict[str, Optional[int]]:
        if self.assume_defaults:
            return {p.nomination_id: p.default_index for p in prompts}
        # input() blocks, keep it off the event loop
        return await asyncio.to_thread(self._ask_all, prompts)
