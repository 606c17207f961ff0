"""
Dialogue Client for the arena.

Single entry point for every generated line (coach responses, character
reactions, battle cries, coaching replies).

FLOW:
1. Mock mode: render straight from the fixed pools (instant, offline)
2. Live mode: ask the provider with a short timeout
3. Any provider error or timeout -> fixed fallback pool, result marked degraded

generate() never raises and never returns an empty line.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from arena_backend import config
from arena_backend.ai.providers import BaseProvider, get_provider, render_from_pools
from arena_backend.ai.schemas import DialogueRequest, DialogueResult
from arena_backend.utils.rng import BattleRng

logger = logging.getLogger("arena.dialogue")


class DialogueClient:
    """
    Dialogue generation with guaranteed fallback.

    Provider is selected via LLM_MODE:
    - "mock" (default): fixed pools
    - "anthropic": Claude API
    """

    def __init__(self, provider: Optional[str] = None, rng: Optional[BattleRng] = None,
                 timeout: Optional[float] = None):
        self.provider_name = (provider or config.LLM_MODE or "mock").lower()
        self.provider: BaseProvider = get_provider(self.provider_name)
        self.rng = rng or BattleRng()
        self.timeout = timeout if timeout is not None else config.DIALOGUE_TIMEOUT_SECONDS
        self.degraded_count = 0

    @property
    def is_live(self) -> bool:
        return self.provider.name != "mock"

    def generate(self, character_id: str, context: Dict[str, Any],
                 kind: str = "character_reaction") -> DialogueResult:
        """
        Generate one line for a character.

        Args:
            character_id: Speaker
            context: Structured facts for the line (see DialogueRequest)
            kind: Line type

        Returns:
            DialogueResult; degraded=True when the fallback pool was used
        """
        request = DialogueRequest(character_id=character_id, kind=kind, context=context or {})

        if not self.is_live:
            return DialogueResult(text=render_from_pools(request, self.rng), source="mock")

        text, error = self.provider.generate(request, self.rng, timeout=self.timeout)
        if error or not text:
            return self._fallback(request, error or "empty response")
        return DialogueResult(text=text, source=self.provider.name)

    async def agenerate(self, character_id: str, context: Dict[str, Any],
                        kind: str = "character_reaction") -> DialogueResult:
        """
        Async variant for the realtime layer.

        Runs the blocking provider call in a worker thread and enforces the
        same timeout from the event loop side.
        """
        if not self.is_live:
            return self.generate(character_id, context, kind)

        request = DialogueRequest(character_id=character_id, kind=kind, context=context or {})
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.generate, character_id, context, kind),
                timeout=self.timeout + 0.5,
            )
        except asyncio.TimeoutError:
            return self._fallback(request, f"timed out after {self.timeout}s")

    def _fallback(self, request: DialogueRequest, error: str) -> DialogueResult:
        self.degraded_count += 1
        logger.warning("Dialogue degraded for %s (%s): %s - using fallback pool",
                       request.character_id, request.kind, error)
        return DialogueResult(
            text=render_from_pools(request, self.rng),
            source="fallback",
            degraded=True,
            error=error,
        )
