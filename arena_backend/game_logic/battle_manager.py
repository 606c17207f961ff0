"""
Battle Manager

Owns every live battle, keyed by battle id. Each battle gets its own
BattleSession, orchestrator, random source, dialogue client and coaching
processor; nothing mutable is shared between battles.

The HTTP and websocket layers talk to battles only through this class.
Listeners registered with add_listener() receive every outbound event as
(battle_id, event, data), which is how the realtime layer broadcasts.

Flow methods that voice dialogue (start_battle, proceed, coach and the
strategy timer) are coroutines: provider calls run in a worker thread via
DialogueClient.agenerate. Engine state changes happen before the first
await, and lines that come back after a reset are dropped.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from arena_backend import config
from arena_backend.ai.feedback import get_adherence_feedback, get_morale_feedback
from arena_backend.ai.dialogue_client import DialogueClient
from arena_backend.commands.coaching import (
    CoachingEffectProcessor, CoachingFocus, CoachingIntensity, CoachingSession,
    CoachingTrigger, detect_trigger,
)
from arena_backend.errors import BattleNotFoundError, InvalidTransitionError
from arena_backend.game_logic.orchestrator import CombatRoundOrchestrator
from arena_backend.game_logic.timers import TimerRegistry
from arena_backend.models.battle_state import ActionKind, BattlePhase, BattleSession, CombatRoundRecord, Team
from arena_backend.models.character import Fighter
from arena_backend.models.relationship import RelationshipGraph
from arena_backend.progression.rewards import RewardCalculator
from arena_backend.progression.skills import SkillProgressionEngine, SkillState, default_skills
from arena_backend.utils.rng import BattleRng

logger = logging.getLogger("arena.engine")

EventListener = Callable[[str, str, Dict[str, Any]], None]


@dataclass
class BattleEntry:
    """Everything that belongs to one battle."""
    session: BattleSession
    orchestrator: CombatRoundOrchestrator
    dialogue: DialogueClient
    coaching: CoachingEffectProcessor
    commentary: List[Dict[str, Any]] = field(default_factory=list)


def build_team(side: str, data: Dict[str, Any]) -> Team:
    """Build a Team from roster data ({name, coach_name, fighters, relationships, chemistry})."""
    data = data or {}
    fighters = [Fighter.from_dict(f) for f in data.get("fighters", [])]
    team = Team(
        side=side,
        name=str(data.get("name", side.title())),
        fighters=fighters,
        coach_name=str(data.get("coach_name", "Coach")),
        relationships=RelationshipGraph.from_dict({"edges": data.get("relationships", [])}),
    )
    if "chemistry" in data:
        team.chemistry = float(data["chemistry"])
    return team


class BattleManager:
    """Registry of live battles."""

    def __init__(self, dialogue_mode: Optional[str] = None,
                 round_cap: Optional[int] = None,
                 strategy_timer_seconds: Optional[float] = None,
                 coaching_timeout_seconds: Optional[float] = None):
        self.dialogue_mode = dialogue_mode
        self.round_cap = round_cap or config.ROUND_CAP
        self.strategy_timer_seconds = (strategy_timer_seconds if strategy_timer_seconds is not None
                                       else config.STRATEGY_TIMER_SECONDS)
        self.coaching_timeout_seconds = (coaching_timeout_seconds if coaching_timeout_seconds is not None
                                         else config.COACHING_TIMEOUT_SECONDS)
        self.timers = TimerRegistry()
        self.rewards = RewardCalculator()
        self.skills = SkillProgressionEngine()
        self._battles: Dict[str, BattleEntry] = {}
        self._listeners: List[EventListener] = []

    # ════════════════════════════════════════════════════════════
    # REGISTRY
    # ════════════════════════════════════════════════════════════

    def create_battle(self, player: Dict[str, Any], opponent: Dict[str, Any],
                      seed: Optional[int] = None, battle_id: Optional[str] = None,
                      round_cap: Optional[int] = None) -> BattleSession:
        """Create a battle in pre_battle from two roster dicts."""
        battle_id = battle_id or uuid.uuid4().hex[:12]
        session = BattleSession(
            battle_id=battle_id,
            player=build_team("player", player),
            opponent=build_team("opponent", opponent),
            round_cap=round_cap or self.round_cap,
        )
        rng = BattleRng(seed)
        dialogue = DialogueClient(provider=self.dialogue_mode, rng=rng)
        self._battles[battle_id] = BattleEntry(
            session=session,
            orchestrator=CombatRoundOrchestrator(session, rng),
            dialogue=dialogue,
            coaching=CoachingEffectProcessor(rng, dialogue),
        )
        logger.info("Created battle %s (%d vs %d fighters)", battle_id,
                    len(session.player.fighters), len(session.opponent.fighters))
        return session

    def get(self, battle_id: str) -> BattleEntry:
        entry = self._battles.get(battle_id)
        if entry is None:
            raise BattleNotFoundError(battle_id)
        return entry

    def get_session(self, battle_id: str) -> BattleSession:
        return self.get(battle_id).session

    def remove(self, battle_id: str) -> None:
        """Abort a battle: cancel its timers and forget it."""
        self.timers.cancel_all(battle_id)
        self._battles.pop(battle_id, None)

    def battle_ids(self) -> List[str]:
        return list(self._battles)

    def __len__(self) -> int:
        return len(self._battles)

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def _emit(self, battle_id: str, event: str, data: Dict[str, Any]) -> None:
        for listener in self._listeners:
            listener(battle_id, event, data)

    # ════════════════════════════════════════════════════════════
    # BATTLE FLOW
    # ════════════════════════════════════════════════════════════

    async def start_battle(self, battle_id: str) -> BattleSession:
        """pre_battle -> huddle, with a battle cry from every fighter."""
        entry = self.get(battle_id)
        session = entry.session
        entry.orchestrator.start_battle()
        generation = session.generation
        fighters = [(f.id, f.name) for f in session.all_fighters()]
        for fighter_id, name in fighters:
            cry = await self._say(entry, fighter_id, {"name": name}, "battle_cry")
            if session.generation != generation:
                return session
            session.announcements.append(cry)
        self._emit(battle_id, "battle_start", session.snapshot())
        return session

    def finish_huddle(self, battle_id: str) -> BattleSession:
        entry = self.get(battle_id)
        entry.orchestrator.finish_huddle()
        self._round_started(entry)
        return entry.session

    def select_strategy(self, battle_id: str, fighter_id: str, category: str, ability_name: str) -> str:
        return self.get(battle_id).orchestrator.select_strategy(fighter_id, category, ability_name)

    async def proceed(self, battle_id: str) -> List[CombatRoundRecord]:
        """Coach confirms the strategy: resolve the whole round."""
        entry = self.get(battle_id)
        entry.orchestrator.proceed()
        return await self._play_round(entry)

    async def expire_strategy_timer(self, battle_id: str) -> List[CombatRoundRecord]:
        """Selection window ran out: auto-fill and resolve the round."""
        entry = self.get(battle_id)
        entry.orchestrator.timer_expired()
        return await self._play_round(entry)

    def reset(self, battle_id: str) -> BattleSession:
        entry = self.get(battle_id)
        self.timers.cancel_all(battle_id)
        entry.orchestrator.reset()
        entry.commentary = []
        return entry.session

    async def coach(self, battle_id: str, fighter_id: str, focus: str, intensity: str,
                    message: str = "", trigger: Optional[str] = None) -> CoachingSession:
        """
        Run a coaching exchange for one fighter.

        Raises:
            ValueError: Unknown focus, intensity or trigger
            InvalidTransitionError: Unknown fighter or wrong phase
        """
        entry = self.get(battle_id)
        session = entry.session
        fighter = session.get_fighter(fighter_id)
        if fighter is None:
            raise InvalidTransitionError(session.phase.value, f"coach unknown fighter '{fighter_id}'")
        if trigger:
            coaching_trigger = CoachingTrigger(trigger)
        else:
            coaching_trigger = detect_trigger(fighter, session.team_of(fighter.id).chemistry)

        generation = session.generation
        result = await entry.coaching.acoach(
            fighter, CoachingFocus(focus), CoachingIntensity(intensity), session.phase,
            battle_id=battle_id, round_number=session.current_round,
            coach_message=message, trigger=coaching_trigger,
        )
        if session.generation != generation:
            return result
        if result.degraded:
            session.degraded = True
        entry.orchestrator.note_coaching(fighter.id)
        self._schedule(entry, "coaching", self.coaching_timeout_seconds, self._coaching_timed_out)
        self._emit(battle_id, "chat_message", {
            "character_id": fighter.id,
            "coach_message": message,
            "character_response": result.character_response,
        })
        return result

    def calculate_rewards(self, battle_id: str,
                          current_skills: Optional[Dict[str, Dict[str, Any]]] = None,
                          membership_multiplier: float = 1.0) -> Dict[str, Dict[str, Any]]:
        """
        Rewards and skill progression for every fighter of a finished battle.

        Args:
            current_skills: fighter id -> {skill: {level, experience, max_level}}

        Raises:
            InvalidTransitionError: Battle not over yet
        """
        session = self.get_session(battle_id)
        if session.phase != BattlePhase.BATTLE_END:
            raise InvalidTransitionError(session.phase.value, "calculate rewards")

        current_skills = current_skills or {}
        results = {}
        for fighter_id, performance in session.performances.items():
            skills = default_skills()
            for skill, data in (current_skills.get(fighter_id) or {}).items():
                skills[skill] = SkillState.from_dict(data)
            results[fighter_id] = {
                "rewards": self.rewards.calculate(performance, membership_multiplier).to_dict(),
                "skills": self.skills.calculate(performance, skills).to_dict(),
            }
        return results

    # ════════════════════════════════════════════════════════════
    # INTERNALS
    # ════════════════════════════════════════════════════════════

    async def _play_round(self, entry: BattleEntry) -> List[CombatRoundRecord]:
        """
        Resolve and close the current round, then voice rogue commentary.

        Every engine step runs before the first await, so a timer or another
        request can never observe a half-resolved round.
        """
        session = entry.session
        generation = session.generation
        self.timers.cancel(session.battle_id, "strategy")
        records = entry.orchestrator.resolve_round()
        prompts = [self._rogue_prompts(entry, r) for r in records if r.action_kind == ActionKind.ROGUE]
        self._emit(session.battle_id, "round_end", {
            "round": session.current_round,
            "records": [r.to_dict() for r in records],
            "adherence_events": [self._adherence_alert(session, e) for e in session.adherence_events
                                 if e.round == session.current_round],
            "morale": {t.side: get_morale_feedback(t.morale.current_morale, t.name) for t in session.teams()},
            "state": session.snapshot(),
        })

        entry.orchestrator.end_round()
        if session.phase == BattlePhase.BATTLE_END:
            self.timers.cancel_all(session.battle_id)
            self._emit(session.battle_id, "battle_end", {
                "outcome": session.outcome.to_dict(),
                "chemistry": session.chemistry_report,
                "state": session.snapshot(),
            })
        else:
            self._round_started(entry)

        for prompt in prompts:
            await self._comment_on_rogue(entry, generation, prompt)
        return records

    def _adherence_alert(self, session: BattleSession, event) -> Dict[str, Any]:
        fighter = session.get_fighter(event.character_id)
        alert = event.to_dict()
        alert["feedback"] = get_adherence_feedback(event.score, fighter.name if fighter else event.character_id)
        return alert

    def _round_started(self, entry: BattleEntry) -> None:
        self._schedule(entry, "strategy", self.strategy_timer_seconds, self._strategy_timed_out)
        self._emit(entry.session.battle_id, "round_start", entry.session.snapshot())

    def _rogue_prompts(self, entry: BattleEntry, record: CombatRoundRecord) -> Dict[str, Any]:
        """Dialogue contexts for a rogue action, captured while the round is fresh."""
        session = entry.session
        actor = session.get_fighter(record.attacker_id)
        team = session.team_of(actor.id)
        return {
            "round": record.round,
            "character_id": actor.id,
            "coach_response": {
                "name": actor.name,
                "coach_name": team.coach_name,
                "rogue_action": {"action_type": record.rogue_action},
                "narrative": record.narrative,
            },
            "character_reaction": {
                "name": actor.name,
                "psych": actor.psych.to_dict(),
                "narrative": record.narrative,
            },
        }

    async def _comment_on_rogue(self, entry: BattleEntry, generation: int, prompt: Dict[str, Any]) -> None:
        character_id = prompt["character_id"]
        coach_line = await self._say(entry, character_id, prompt["coach_response"], "coach_response")
        reaction = await self._say(entry, character_id, prompt["character_reaction"], "character_reaction")
        if entry.session.generation != generation:
            return
        entry.commentary.append({
            "round": prompt["round"],
            "character_id": character_id,
            "coach_response": coach_line,
            "character_reaction": reaction,
        })

    async def _say(self, entry: BattleEntry, character_id: str, context: Dict[str, Any], kind: str) -> str:
        """One line of dialogue, generated off the event loop."""
        result = await entry.dialogue.agenerate(character_id, context, kind)
        if result.degraded:
            entry.session.degraded = True
        return result.text

    def _schedule(self, entry: BattleEntry, name: str, delay: float,
                  handler: Callable[[str], Any]) -> None:
        """Arm a timer when running inside an event loop (no-op otherwise)."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        battle_id = entry.session.battle_id
        self.timers.schedule(
            battle_id, name, delay,
            callback=lambda: handler(battle_id),
            generation=entry.session.generation,
            current_generation=lambda: self._generation_of(battle_id),
        )

    def _generation_of(self, battle_id: str) -> Optional[int]:
        entry = self._battles.get(battle_id)
        return entry.session.generation if entry else None

    async def _strategy_timed_out(self, battle_id: str) -> None:
        entry = self._battles.get(battle_id)
        if entry is None or entry.session.phase != BattlePhase.STRATEGY_SELECTION:
            return
        logger.info("Strategy timer expired for %s round %d", battle_id, entry.session.current_round)
        await self.expire_strategy_timer(battle_id)

    def _coaching_timed_out(self, battle_id: str) -> None:
        entry = self._battles.get(battle_id)
        if entry is None:
            return
        entry.session.announcements.append("Coaching window closed.")
        logger.info("Coaching window closed for %s", battle_id)
