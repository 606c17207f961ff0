"""
Obedience Arbiter

Turns the round context into a binary obey/deviate decision:

    p = 0.8 + 0.001 * morale - (0.2 if injured) - (0.3 if last round was rogue)
    will_obey = bernoulli(p)

This probability is independent of the adherence score. The adherence
tier is carried through for reporting only and never changes p.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from arena_backend.game_logic.adherence import AdherenceResult
from arena_backend.utils.rng import BattleRng

BASE_OBEDIENCE = 0.8
MORALE_WEIGHT = 0.001
INJURY_PENALTY = 0.2
ROGUE_STREAK_PENALTY = 0.3


def calculate_obedience_probability(morale: float, injured: bool = False,
                                    last_round_was_rogue: bool = False) -> float:
    """
    Probability of following orders this round.

    Morale 0-100 moves p between 0.8 and 0.9; injury and a rogue streak
    drop it. Result is clamped to [0, 1].
    """
    p = BASE_OBEDIENCE + MORALE_WEIGHT * morale
    if injured:
        p -= INJURY_PENALTY
    if last_round_was_rogue:
        p -= ROGUE_STREAK_PENALTY
    return max(0.0, min(1.0, p))


@dataclass(frozen=True)
class ObedienceDecision:
    will_obey: bool
    probability: float
    roll: float
    adherence_tier: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "will_obey": self.will_obey,
            "probability": self.probability,
            "roll": self.roll,
            "adherence_tier": self.adherence_tier,
        }


class ObedienceArbiter:
    """Makes the obey/deviate roll for each actor."""

    def __init__(self, rng: BattleRng):
        self.rng = rng

    def decide(self, morale: float, injured: bool = False,
               last_round_was_rogue: bool = False,
               adherence: Optional[AdherenceResult] = None) -> ObedienceDecision:
        probability = calculate_obedience_probability(morale, injured, last_round_was_rogue)
        roll = self.rng.random()
        return ObedienceDecision(
            will_obey=roll < probability,
            probability=probability,
            roll=roll,
            adherence_tier=adherence.tier.value if adherence else None,
        )
