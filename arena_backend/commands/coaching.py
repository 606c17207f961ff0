"""
Coaching Effect Processor

Coaching is the one way a coach can change a fighter's psychology between
rounds. A session picks a focus and an intensity; effectiveness decides how
much of the focus's deltas land on the PsychProfile.

Effectiveness:
    50
    +30 stressed (>70) fighter given mental_health_support
    +25 fragile (mental health <40) fighter given a confidence_boost
    +20 off-plan (adherence <50) fighter coached gently
    +15 on-plan (adherence >80) fighter coached firmly
    + trait modifiers (Loyal, Stubborn, Analytical)
    clamped to [10, 100]

Every session is appended to a log that is never edited.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from arena_backend.ai.dialogue_client import DialogueClient
from arena_backend.ai.responses import COACHING_FALLBACK_REPLY, POSITIVE_COACHING_REPLIES
from arena_backend.errors import InvalidTransitionError
from arena_backend.models.battle_state import BattlePhase
from arena_backend.models.character import Fighter
from arena_backend.models.personality import Trait, get_coaching_modifier
from arena_backend.utils.rng import BattleRng

logger = logging.getLogger("arena.coaching")


class CoachingFocus(Enum):
    MOTIVATIONAL_SPEECH = "motivational_speech"
    TACTICAL_ADJUSTMENT = "tactical_adjustment"
    CONFLICT_RESOLUTION = "conflict_resolution"
    CONFIDENCE_BOOST = "confidence_boost"
    MENTAL_HEALTH_SUPPORT = "mental_health_support"


class CoachingIntensity(Enum):
    GENTLE = "gentle"
    FIRM = "firm"
    INTENSE = "intense"


class CoachingTrigger(Enum):
    PLAYER_REQUESTED = "player_requested"
    CHARACTER_BREAKDOWN = "character_breakdown"
    TEAM_CHEMISTRY_CRISIS = "team_chemistry_crisis"


# Phases where the coach can talk to a fighter
COACHING_PHASES = (BattlePhase.HUDDLE, BattlePhase.STRATEGY_SELECTION)

BASE_EFFECTIVENESS = 50
MIN_EFFECTIVENESS = 10
MAX_EFFECTIVENESS = 100

# Full-strength deltas per focus, scaled by effectiveness / 100
FOCUS_DELTAS: Dict[CoachingFocus, Dict[str, int]] = {
    CoachingFocus.MENTAL_HEALTH_SUPPORT: {"stress": -20, "mental_health": 15},
    CoachingFocus.MOTIVATIONAL_SPEECH: {"team_trust": 10, "battle_focus": 10, "stress": -5},
    CoachingFocus.TACTICAL_ADJUSTMENT: {"gameplan_adherence": 15, "battle_focus": 10, "training": 5},
    CoachingFocus.CONFLICT_RESOLUTION: {"team_trust": 20, "communication": 10},
    CoachingFocus.CONFIDENCE_BOOST: {"mental_health": 10, "ego": 10, "battle_focus": 5},
}

# Intense coaching is stressful, except when the point is to relieve stress
INTENSE_STRESS = 10

PRIDEFUL_REPLIES = {
    CoachingFocus.CONFIDENCE_BOOST: "Of course I'm great! Tell me something I don't know.",
    CoachingFocus.TACTICAL_ADJUSTMENT: "Your strategy is... adequate. I'll make it work.",
}

# Crisis triggers
BREAKDOWN_MENTAL_HEALTH = 25
CHEMISTRY_CRISIS = 30


@dataclass(frozen=True)
class CoachingSession:
    """One archived coaching exchange."""
    battle_id: str
    character_id: str
    focus: CoachingFocus
    intensity: CoachingIntensity
    trigger: CoachingTrigger
    effectiveness: int
    deltas: Dict[str, int] = field(default_factory=dict)
    coach_message: str = ""
    character_response: str = ""
    round: int = 0
    degraded: bool = False

    def to_dict(self) -> Dict:
        return {
            "battle_id": self.battle_id,
            "character_id": self.character_id,
            "focus": self.focus.value,
            "intensity": self.intensity.value,
            "trigger": self.trigger.value,
            "effectiveness": self.effectiveness,
            "deltas": dict(self.deltas),
            "coach_message": self.coach_message,
            "character_response": self.character_response,
            "round": self.round,
            "degraded": self.degraded,
        }


def calculate_effectiveness(fighter: Fighter, focus: CoachingFocus,
                            intensity: CoachingIntensity) -> int:
    """Effectiveness 10-100 for coaching this fighter right now."""
    psych = fighter.psych
    effectiveness = BASE_EFFECTIVENESS
    if psych.stress > 70 and focus == CoachingFocus.MENTAL_HEALTH_SUPPORT:
        effectiveness += 30
    if psych.mental_health < 40 and focus == CoachingFocus.CONFIDENCE_BOOST:
        effectiveness += 25
    if psych.gameplan_adherence < 50 and intensity == CoachingIntensity.GENTLE:
        effectiveness += 20
    if psych.gameplan_adherence > 80 and intensity == CoachingIntensity.FIRM:
        effectiveness += 15
    effectiveness += get_coaching_modifier(fighter.traits, focus.value, intensity.value)
    return max(MIN_EFFECTIVENESS, min(MAX_EFFECTIVENESS, effectiveness))


def planned_deltas(focus: CoachingFocus, intensity: CoachingIntensity,
                   effectiveness: int) -> Dict[str, int]:
    """Requested deltas before clamping."""
    scale = effectiveness / 100
    deltas = {stat: round(value * scale) for stat, value in FOCUS_DELTAS[focus].items()}
    if intensity == CoachingIntensity.INTENSE and focus != CoachingFocus.MENTAL_HEALTH_SUPPORT:
        deltas["stress"] = deltas.get("stress", 0) + INTENSE_STRESS
    return deltas


def rule_based_reply(fighter: Fighter, focus: CoachingFocus,
                     intensity: CoachingIntensity, rng: BattleRng) -> str:
    """How the fighter answers, from their current state. First match wins."""
    psych = fighter.psych
    if psych.stress > 70:
        if intensity == CoachingIntensity.INTENSE:
            return "I can't handle pressure right now! Give me space!"
        if focus == CoachingFocus.MENTAL_HEALTH_SUPPORT:
            return "Thank you... I really needed to hear that."

    if psych.gameplan_adherence < 40:
        if intensity in (CoachingIntensity.FIRM, CoachingIntensity.INTENSE):
            return "You can't tell me what to do! I know what I'm doing!"
        return "I'll consider it, but I still think my way is better."

    if Trait.PRIDEFUL in fighter.traits and focus in PRIDEFUL_REPLIES:
        return PRIDEFUL_REPLIES[focus]

    return rng.choice(POSITIVE_COACHING_REPLIES)


def detect_trigger(fighter: Fighter, team_chemistry: float) -> CoachingTrigger:
    """Why coaching is happening when the coach didn't ask for it."""
    if fighter.psych.mental_health < BREAKDOWN_MENTAL_HEALTH:
        return CoachingTrigger.CHARACTER_BREAKDOWN
    if team_chemistry < CHEMISTRY_CRISIS:
        return CoachingTrigger.TEAM_CHEMISTRY_CRISIS
    return CoachingTrigger.PLAYER_REQUESTED


class CoachingEffectProcessor:
    """
    Applies coaching sessions to fighters and keeps the session log.

    One processor per battle.
    """

    def __init__(self, rng: BattleRng, dialogue: Optional[DialogueClient] = None):
        self.rng = rng
        self.dialogue = dialogue
        self._log: List[CoachingSession] = []

    @property
    def log(self) -> Tuple[CoachingSession, ...]:
        return tuple(self._log)

    def sessions_for(self, character_id: str) -> List[CoachingSession]:
        return [s for s in self._log if s.character_id == character_id]

    def coach(self, fighter: Fighter, focus: CoachingFocus, intensity: CoachingIntensity,
              phase: BattlePhase, battle_id: str = "", round_number: int = 0,
              coach_message: str = "",
              trigger: CoachingTrigger = CoachingTrigger.PLAYER_REQUESTED) -> CoachingSession:
        """
        Run one coaching exchange with the rule-based reply.

        The reply is chosen from the fighter's state before the deltas land.

        Raises:
            InvalidTransitionError: Not in huddle or strategy selection
        """
        self._require_coaching_phase(phase)
        effectiveness = calculate_effectiveness(fighter, focus, intensity)
        reply = rule_based_reply(fighter, focus, intensity, self.rng)
        applied = self._apply_deltas(fighter, focus, intensity, effectiveness)
        return self._record(fighter, focus, intensity, trigger, effectiveness, applied,
                            battle_id, round_number, coach_message, reply, False)

    async def acoach(self, fighter: Fighter, focus: CoachingFocus, intensity: CoachingIntensity,
                     phase: BattlePhase, battle_id: str = "", round_number: int = 0,
                     coach_message: str = "",
                     trigger: CoachingTrigger = CoachingTrigger.PLAYER_REQUESTED) -> CoachingSession:
        """
        Run one coaching exchange and voice the reply through the dialogue client.

        The deltas land before the dialogue call is awaited. The prompt
        describes the fighter as they were when coached.

        Raises:
            InvalidTransitionError: Not in huddle or strategy selection
        """
        self._require_coaching_phase(phase)
        effectiveness = calculate_effectiveness(fighter, focus, intensity)
        rule_reply = rule_based_reply(fighter, focus, intensity, self.rng)
        context = {
            "name": fighter.name,
            "focus": focus.value,
            "intensity": intensity.value,
            "coach_message": coach_message,
            "psych": fighter.psych.to_dict(),
            "rule_reply": rule_reply,
        }
        applied = self._apply_deltas(fighter, focus, intensity, effectiveness)

        reply, degraded = rule_reply, False
        if self.dialogue is not None:
            result = await self.dialogue.agenerate(fighter.id, context, kind="coaching_reply")
            reply, degraded = (result.text or COACHING_FALLBACK_REPLY), result.degraded
        return self._record(fighter, focus, intensity, trigger, effectiveness, applied,
                            battle_id, round_number, coach_message, reply, degraded)

    def _require_coaching_phase(self, phase: BattlePhase) -> None:
        if phase not in COACHING_PHASES:
            raise InvalidTransitionError(phase.value, "coach")

    def _apply_deltas(self, fighter: Fighter, focus: CoachingFocus, intensity: CoachingIntensity,
                      effectiveness: int) -> Dict[str, float]:
        return {
            stat: fighter.psych.modify(stat, delta)
            for stat, delta in planned_deltas(focus, intensity, effectiveness).items()
        }

    def _record(self, fighter: Fighter, focus: CoachingFocus, intensity: CoachingIntensity,
                trigger: CoachingTrigger, effectiveness: int, applied: Dict[str, float],
                battle_id: str, round_number: int, coach_message: str,
                reply: str, degraded: bool) -> CoachingSession:
        session = CoachingSession(
            battle_id=battle_id,
            character_id=fighter.id,
            focus=focus,
            intensity=intensity,
            trigger=trigger,
            effectiveness=effectiveness,
            deltas=applied,
            coach_message=coach_message,
            character_response=reply,
            round=round_number,
            degraded=degraded,
        )
        self._log.append(session)
        logger.info("Coached %s (%s/%s, %s): effectiveness %d, deltas %s",
                    fighter.id, focus.value, intensity.value, trigger.value, effectiveness, applied)
        return session
