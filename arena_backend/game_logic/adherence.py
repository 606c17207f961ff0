"""
Gameplan Adherence Evaluator

Scores how likely a character is to follow the coach's gameplan this round:

    score = base_adherence
          - 0.30 * stress
          + 0.20 * (mental_health - 50)
          + 0.10 * (team_trust - 50)
          + 0.15 * (battle_focus - 50)
          + jitter                      # uniform in [-10, 10]
    score = clamp(score, 0, 100)

Tiers (inclusive lower bounds):
    80+     following_plan
    60-79   hesitant
    30-59   going_rogue
    <30     completely_off_script

This is a reporting signal (alerts, risk levels, UI). The obey/deviate
roll itself is made by ObedienceArbiter; the two are kept separate.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from arena_backend.models.psych_profile import PsychProfile
from arena_backend.utils.rng import BattleRng

# Formula weights
STRESS_WEIGHT = 0.30
MENTAL_HEALTH_WEIGHT = 0.20
TEAM_TRUST_WEIGHT = 0.10
BATTLE_FOCUS_WEIGHT = 0.15
JITTER_RANGE = 10.0

# Alerting
ALERT_SCORE_THRESHOLD = 40
ALERT_SWING_THRESHOLD = 20
HISTORY_LIMIT = 50
TREND_WINDOW = 5


class AdherenceTier(Enum):
    FOLLOWING_PLAN = "following_plan"
    HESITANT = "hesitant"
    GOING_ROGUE = "going_rogue"
    COMPLETELY_OFF_SCRIPT = "completely_off_script"


TIER_CONSEQUENCES = {
    AdherenceTier.COMPLETELY_OFF_SCRIPT: [
        "May abandon team strategy",
        "Risk of disrupting coordination",
        "Unpredictable actions",
    ],
    AdherenceTier.GOING_ROGUE: [
        "May deviate from plan",
        "Reduced team synergy",
        "Strategic complications",
    ],
    AdherenceTier.HESITANT: [
        "Uncertain execution",
        "Potential timing issues",
    ],
    AdherenceTier.FOLLOWING_PLAN: [
        "Uncertain execution",
        "Potential timing issues",
    ],
}


def classify_adherence(score: float) -> AdherenceTier:
    """Map a 0-100 adherence score to its tier."""
    if score >= 80:
        return AdherenceTier.FOLLOWING_PLAN
    if score >= 60:
        return AdherenceTier.HESITANT
    if score >= 30:
        return AdherenceTier.GOING_ROGUE
    return AdherenceTier.COMPLETELY_OFF_SCRIPT


def get_risk_level(score: float) -> str:
    """'low' (70+), 'medium' (50+), 'high' (30+) or 'critical'."""
    if score >= 70:
        return "low"
    if score >= 50:
        return "medium"
    if score >= 30:
        return "high"
    return "critical"


@dataclass
class AdherenceResult:
    """Outcome of one adherence check."""
    character_id: str
    score: float
    tier: AdherenceTier
    factors: List[str] = field(default_factory=list)
    base_adherence: float = 0.0
    stress_modifier: float = 0.0
    mental_health_modifier: float = 0.0
    team_trust_modifier: float = 0.0
    battle_focus_modifier: float = 0.0
    jitter: float = 0.0

    @property
    def risk_level(self) -> str:
        return get_risk_level(self.score)

    @property
    def reasoning(self) -> str:
        if self.factors:
            return f"Affected by: {', '.join(self.factors)}"
        return "Following gameplan"

    def to_dict(self) -> Dict:
        return {
            "character_id": self.character_id,
            "score": self.score,
            "tier": self.tier.value,
            "factors": list(self.factors),
            "base_adherence": self.base_adherence,
            "stress_modifier": self.stress_modifier,
            "mental_health_modifier": self.mental_health_modifier,
            "team_trust_modifier": self.team_trust_modifier,
            "battle_focus_modifier": self.battle_focus_modifier,
            "jitter": self.jitter,
            "risk_level": self.risk_level,
        }


@dataclass(frozen=True)
class GameplanAdherenceEvent:
    """Alert pushed to the UI when a character's adherence looks dangerous."""
    battle_id: str
    round: int
    character_id: str
    tier: AdherenceTier
    score: float
    reasons: tuple
    consequences: tuple
    mental_factors: Dict[str, float] = field(default_factory=dict, hash=False, compare=False)

    def to_dict(self) -> Dict:
        return {
            "battle_id": self.battle_id,
            "round": int(self.round),
            "character_id": self.character_id,
            "tier": self.tier.value,
            "score": self.score,
            "reasons": list(self.reasons),
            "consequences": list(self.consequences),
            "mental_factors": dict(self.mental_factors),
        }


class AdherenceEvaluator:
    """
    Computes adherence scores and tracks per-character history for alerts.

    One evaluator belongs to one battle; it holds no global state.
    """

    def __init__(self, rng: BattleRng):
        self.rng = rng
        self.history: Dict[str, List[float]] = {}

    def evaluate(self, character_id: str, profile: PsychProfile,
                 is_last_round_rogue: bool = False,
                 is_injured: bool = False) -> AdherenceResult:
        """
        Score one character for this round.

        Args:
            character_id: Canonical id
            profile: Psych snapshot (read only)
            is_last_round_rogue: Character deviated last round
            is_injured: Character is below half health

        Returns:
            AdherenceResult with score, tier and contributing factors
        """
        stress_modifier = -STRESS_WEIGHT * profile.stress
        mental_health_modifier = MENTAL_HEALTH_WEIGHT * (profile.mental_health - 50)
        team_trust_modifier = TEAM_TRUST_WEIGHT * (profile.team_trust - 50)
        battle_focus_modifier = BATTLE_FOCUS_WEIGHT * (profile.battle_focus - 50)
        jitter = self.rng.uniform(-JITTER_RANGE, JITTER_RANGE)

        raw = (profile.gameplan_adherence
               + stress_modifier
               + mental_health_modifier
               + team_trust_modifier
               + battle_focus_modifier
               + jitter)
        score = max(0, min(100, raw))

        factors = []
        if profile.stress > 70:
            factors.append("high stress levels")
        if profile.mental_health < 40:
            factors.append("poor mental health")
        if profile.team_trust < 50:
            factors.append("low team trust")
        if is_last_round_rogue:
            factors.append("previous off-gameplan actions")
        if is_injured:
            factors.append("fighting through injury")

        return AdherenceResult(
            character_id=character_id,
            score=score,
            tier=classify_adherence(score),
            factors=factors,
            base_adherence=profile.gameplan_adherence,
            stress_modifier=stress_modifier,
            mental_health_modifier=mental_health_modifier,
            team_trust_modifier=team_trust_modifier,
            battle_focus_modifier=battle_focus_modifier,
            jitter=jitter,
        )

    def record(self, result: AdherenceResult, profile: PsychProfile,
               battle_id: str = "", round_number: int = 0) -> Optional[GameplanAdherenceEvent]:
        """
        Append a result to the character's history and build an alert if warranted.

        Alerts fire when the score is at or below 40, when it swung by 20+
        since the previous check, or when the character is completely off script.
        """
        history = self.history.setdefault(result.character_id, [])
        previous = history[-1] if history else None
        history.append(result.score)
        del history[:-HISTORY_LIMIT]

        swung = previous is not None and abs(previous - result.score) >= ALERT_SWING_THRESHOLD
        should_alert = (result.score <= ALERT_SCORE_THRESHOLD
                        or swung
                        or result.tier == AdherenceTier.COMPLETELY_OFF_SCRIPT)
        if not should_alert:
            return None

        return GameplanAdherenceEvent(
            battle_id=battle_id,
            round=round_number,
            character_id=result.character_id,
            tier=result.tier,
            score=result.score,
            reasons=tuple(result.factors),
            consequences=tuple(TIER_CONSEQUENCES[result.tier]),
            mental_factors={
                "mental_health": profile.mental_health,
                "stress": profile.stress,
                "team_trust": profile.team_trust,
                "battle_focus": profile.battle_focus,
            },
        )

    def get_trend(self, character_id: str) -> Dict:
        """
        Trend over the last few checks.

        Returns:
            {'direction': 'stable'|'improving'|'declining', 'magnitude': float}
        """
        recent = self.history.get(character_id, [])[-TREND_WINDOW:]
        change = recent[-1] - recent[0] if len(recent) >= 2 else 0
        if abs(change) < 5:
            direction = "stable"
        elif change > 0:
            direction = "improving"
        else:
            direction = "declining"
        return {"direction": direction, "magnitude": abs(change)}
