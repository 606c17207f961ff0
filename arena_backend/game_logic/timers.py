"""
Battle timers.

Strategy-selection and coaching windows are cooperative asyncio tasks,
scoped by battle id. A timer never blocks the state machine: when it
fires it feeds one input into the battle (e.g. TIMER_EXPIRED), exactly
like a coach would.

Reset/abort cancels every timer for the battle. A callback that slipped
through anyway is dropped if the battle's generation moved on after the
timer was scheduled.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("arena.timers")


class TimerRegistry:
    """Named asyncio timers grouped by battle id."""

    def __init__(self):
        self._timers: Dict[str, Dict[str, asyncio.Task]] = {}

    def schedule(self, battle_id: str, name: str, delay: float,
                 callback: Callable[[], Any],
                 generation: int,
                 current_generation: Callable[[], Optional[int]]) -> asyncio.Task:
        """
        Run callback after delay seconds unless cancelled or stale.

        Replaces an existing timer with the same name for the battle.
        Must be called from a running event loop.

        Args:
            battle_id: Owning battle
            name: Timer name, e.g. "strategy" or "coaching"
            delay: Seconds to wait
            callback: Fired on expiry; a returned awaitable is awaited
            generation: Battle generation when scheduled
            current_generation: Returns the battle's generation now (None if gone)
        """
        self.cancel(battle_id, name)

        async def _run():
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                return
            if current_generation() != generation:
                logger.info("Dropping stale %s timer for %s (generation %s)", name, battle_id, generation)
                return
            self._timers.get(battle_id, {}).pop(name, None)
            result = callback()
            if inspect.isawaitable(result):
                await result

        task = asyncio.get_running_loop().create_task(_run())
        self._timers.setdefault(battle_id, {})[name] = task
        logger.debug("Scheduled %s timer for %s in %.1fs", name, battle_id, delay)
        return task

    def cancel(self, battle_id: str, name: str) -> bool:
        task = self._timers.get(battle_id, {}).pop(name, None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_all(self, battle_id: str) -> int:
        """Cancel every timer for a battle. Returns how many were pending."""
        timers = self._timers.pop(battle_id, {})
        for task in timers.values():
            task.cancel()
        if timers:
            logger.info("Cancelled %d timer(s) for %s", len(timers), battle_id)
        return len(timers)

    def pending(self, battle_id: str) -> Dict[str, asyncio.Task]:
        return {name: t for name, t in self._timers.get(battle_id, {}).items() if not t.done()}
