"""
Rogue Action Judge

When a character ignores the gameplan, the judge decides WHAT they do
instead (from their psychology and the state of the fight) and rules on
the consequences: damage dealt, damage taken, morale and chemistry swings
and the character's own mental-health cost.

The judge only produces structured facts. Coach and character dialogue
is rendered from those facts by the dialogue client.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from arena_backend.models.character import Fighter
from arena_backend.utils.rng import BattleRng

logger = logging.getLogger("arena.engine")


class RogueActionType(Enum):
    RECKLESS_ATTACK = "reckless_attack"
    REFUSE_FIGHT = "refuse_fight"
    ATTACK_TEAMMATE = "attack_teammate"
    CREATIVE_STRATEGY = "creative_strategy"
    PANIC_FLEE = "panic_flee"
    BERSERKER_RAGE = "berserker_rage"
    PROTECTIVE_SACRIFICE = "protective_sacrifice"
    ACTS_UNPREDICTABLY = "acts_unpredictably"


class DeviationType(Enum):
    MINOR_INSUBORDINATION = "minor_insubordination"
    STRATEGY_OVERRIDE = "strategy_override"
    FRIENDLY_FIRE = "friendly_fire"
    PACIFIST_MODE = "pacifist_mode"
    BERSERKER_RAGE = "berserker_rage"
    IDENTITY_CRISIS = "identity_crisis"
    DIMENSIONAL_ESCAPE = "dimensional_escape"
    ENVIRONMENTAL_CHAOS = "environmental_chaos"
    COMPLETE_BREAKDOWN = "complete_breakdown"


# Rogue action -> (deviation category, severity)
DEVIATION_CATALOGUE = {
    RogueActionType.RECKLESS_ATTACK: (DeviationType.STRATEGY_OVERRIDE, "moderate"),
    RogueActionType.REFUSE_FIGHT: (DeviationType.PACIFIST_MODE, "major"),
    RogueActionType.ATTACK_TEAMMATE: (DeviationType.FRIENDLY_FIRE, "extreme"),
    RogueActionType.CREATIVE_STRATEGY: (DeviationType.MINOR_INSUBORDINATION, "minor"),
    RogueActionType.PANIC_FLEE: (DeviationType.DIMENSIONAL_ESCAPE, "major"),
    RogueActionType.BERSERKER_RAGE: (DeviationType.BERSERKER_RAGE, "extreme"),
    RogueActionType.PROTECTIVE_SACRIFICE: (DeviationType.STRATEGY_OVERRIDE, "moderate"),
    RogueActionType.ACTS_UNPREDICTABLY: (DeviationType.ENVIRONMENTAL_CHAOS, "moderate"),
}

# Generation thresholds
CRISIS_MENTAL_HEALTH = 25
BERSERK_EGO = 80
BETRAYAL_TRUST = 20
BETRAYAL_EGO = 75
SACRIFICE_TRUST = 80
SACRIFICE_ALLY_HP_PCT = 30
PRIDE_EGO = 70
DISLOYAL_TRUST = 30
LOW_MORALE = 40
SHOWBOAT_EGO = 85

# creative_strategy succeeds when the roll is above this (70%)
CREATIVE_FAILURE_CHANCE = 0.3


@dataclass
class RogueAction:
    """What a character does instead of the gameplan."""
    action_type: RogueActionType
    character_id: str
    character_name: str
    description: str
    reason: str
    target_id: Optional[str] = None

    @property
    def deviation_type(self) -> DeviationType:
        return DEVIATION_CATALOGUE[self.action_type][0]

    @property
    def severity(self) -> str:
        return DEVIATION_CATALOGUE[self.action_type][1]

    def to_dict(self) -> Dict:
        return {
            "action_type": self.action_type.value,
            "character_id": self.character_id,
            "character_name": self.character_name,
            "description": self.description,
            "reason": self.reason,
            "target_id": self.target_id,
            "deviation_type": self.deviation_type.value,
            "severity": self.severity,
        }


@dataclass
class JudgeRuling:
    """
    Consequences of a rogue action.

    Attributes:
        damage: Damage to the opponent (>= 0)
        target_damage: Damage to target_damage_recipient (>= 0), usually the
            rogue character itself, a teammate for friendly fire
        target_damage_recipient: Canonical id that takes target_damage
        morale_change: Change to the acting team's morale (-100..100)
        narrative_description: Text for the battle log
        status_effects: Tags applied to the rogue character
        team_chemistry_change: Change to team chemistry
        mental_health_change: Change to the rogue character's mental health
    """
    damage: int = 0
    target_damage: int = 0
    target_damage_recipient: Optional[str] = None
    morale_change: int = 0
    narrative_description: str = ""
    status_effects: List[str] = field(default_factory=list)
    team_chemistry_change: int = 0
    mental_health_change: int = 0

    def __post_init__(self):
        self.damage = max(0, int(self.damage))
        self.target_damage = max(0, int(self.target_damage))
        self.morale_change = max(-100, min(100, int(self.morale_change)))

    def to_dict(self) -> Dict:
        return {
            "damage": self.damage,
            "target_damage": self.target_damage,
            "target_damage_recipient": self.target_damage_recipient,
            "morale_change": self.morale_change,
            "narrative_description": self.narrative_description,
            "status_effects": list(self.status_effects),
            "team_chemistry_change": self.team_chemistry_change,
            "mental_health_change": self.mental_health_change,
        }


class RogueActionJudge:
    """Generates rogue actions and rules on them."""

    def __init__(self, rng: BattleRng):
        self.rng = rng
        self._rulings = {
            RogueActionType.RECKLESS_ATTACK: self._judge_reckless_attack,
            RogueActionType.REFUSE_FIGHT: self._judge_refuse_fight,
            RogueActionType.ATTACK_TEAMMATE: self._judge_teammate_attack,
            RogueActionType.CREATIVE_STRATEGY: self._judge_creative_strategy,
            RogueActionType.PANIC_FLEE: self._judge_panic_flee,
            RogueActionType.BERSERKER_RAGE: self._judge_berserker_rage,
            RogueActionType.PROTECTIVE_SACRIFICE: self._judge_protective_sacrifice,
            RogueActionType.ACTS_UNPREDICTABLY: self._judge_unpredictable,
        }
        missing = set(RogueActionType) - set(self._rulings)
        if missing:
            raise RuntimeError(f"No ruling for rogue actions: {sorted(m.value for m in missing)}")

    def generate_action(self, actor: Fighter, opponent: Fighter, team_morale: float,
                        trend: str, teammates: Sequence[Fighter] = ()) -> RogueAction:
        """
        Pick the rogue action that fits the character's psychology.

        First match wins:
        1. Mental health crisis: berserker rage (huge ego) or panic
        2. No trust + big ego + a teammate in reach: friendly fire
        3. High trust + a teammate about to fall: protective sacrifice
        4. Losing with a proud ego: reckless attack
        5. Low trust and low morale: refuses to fight
        6. Winning with a huge ego: creative showboating
        7. Anything else: acts unpredictably
        """
        psych = actor.psych
        allies = [t for t in teammates if t.id != actor.id and t.is_alive]

        def action(action_type, description, reason, target_id=None):
            return RogueAction(action_type, actor.id, actor.name, description, reason,
                               target_id or opponent.id)

        if psych.mental_health < CRISIS_MENTAL_HEALTH:
            if psych.ego > BERSERK_EGO:
                return action(RogueActionType.BERSERKER_RAGE,
                              f"{actor.name} loses all control and enters a berserker rage!",
                              "Mental breakdown combined with massive ego")
            return action(RogueActionType.PANIC_FLEE,
                          f"{actor.name} panics and tries to flee the battle!",
                          "Complete mental breakdown")

        if allies and psych.team_trust < BETRAYAL_TRUST and psych.ego > BETRAYAL_EGO:
            victim = allies[0]
            return action(RogueActionType.ATTACK_TEAMMATE,
                          f"{actor.name} turns on {victim.name}!",
                          "Contempt for the team boils over",
                          target_id=victim.id)

        if psych.team_trust >= SACRIFICE_TRUST:
            endangered = [a for a in allies if a.hp_percentage < SACRIFICE_ALLY_HP_PCT]
            if endangered:
                return action(RogueActionType.PROTECTIVE_SACRIFICE,
                              f"{actor.name} leaps in front of {endangered[0].name}!",
                              "Loyalty outweighs the plan")

        if trend == "losing" and psych.ego > PRIDE_EGO:
            return action(RogueActionType.RECKLESS_ATTACK,
                          f"{actor.name} ignores defense and charges recklessly!",
                          "Pride refuses to accept defeat")

        if psych.team_trust < DISLOYAL_TRUST and team_morale < LOW_MORALE:
            return action(RogueActionType.REFUSE_FIGHT,
                          f"{actor.name} crosses their arms and refuses to fight!",
                          "Low team loyalty and poor morale")

        if psych.ego > SHOWBOAT_EGO and trend == "winning":
            return action(RogueActionType.CREATIVE_STRATEGY,
                          f"{actor.name} improvises a flashy, unorthodox attack!",
                          "Ego drives showboating when ahead")

        return action(RogueActionType.ACTS_UNPREDICTABLY,
                      f"{actor.name} acts unpredictably!",
                      "General deviation from gameplan")

    def judge(self, action: RogueAction, actor: Fighter, opponent: Fighter,
              team_morale: float) -> JudgeRuling:
        """Rule on a rogue action. Every action type has a dedicated ruling."""
        ruling = self._rulings[action.action_type](action, actor, opponent, team_morale)
        if ruling.target_damage_recipient is None:
            ruling.target_damage_recipient = actor.id
        logger.debug("Ruling for %s (%s): %s", actor.id, action.action_type.value, ruling.to_dict())
        return ruling

    # ════════════════════════════════════════════════════════════
    # RULINGS
    # ════════════════════════════════════════════════════════════

    def _judge_reckless_attack(self, action, actor, opponent, team_morale):
        return JudgeRuling(
            damage=int(actor.attack * 1.5),
            target_damage=int(opponent.attack * 2),
            morale_change=-10 if team_morale > 60 else -5,
            status_effects=["vulnerable"],
            narrative_description=(f"{actor.name} throws caution to the wind! Their reckless "
                                   f"assault hits hard but leaves them exposed!"),
            mental_health_change=-5,
        )

    def _judge_refuse_fight(self, action, actor, opponent, team_morale):
        return JudgeRuling(
            damage=0,
            target_damage=int(opponent.attack),
            morale_change=-15,
            status_effects=["demoralized"],
            narrative_description=(f"{actor.name} refuses to engage! The opponent gets a free "
                                   f"hit while the team watches in dismay!"),
            team_chemistry_change=-10,
            mental_health_change=-10,
        )

    def _judge_teammate_attack(self, action, actor, opponent, team_morale):
        return JudgeRuling(
            damage=0,
            target_damage=int(actor.attack * 0.8),
            target_damage_recipient=action.target_id,
            morale_change=-25,
            status_effects=["betrayal_trauma"],
            narrative_description=(f"In a shocking turn, {actor.name} turns on their own "
                                   f"teammate! The crowd gasps in horror!"),
            team_chemistry_change=-30,
            mental_health_change=-15,
        )

    def _judge_creative_strategy(self, action, actor, opponent, team_morale):
        if self.rng.random() > CREATIVE_FAILURE_CHANCE:
            return JudgeRuling(
                damage=int(actor.attack * 1.3),
                target_damage=0,
                morale_change=15,
                status_effects=["inspired"],
                narrative_description=(f"{actor.name}'s improvised strategy catches everyone off "
                                       f"guard! A brilliant display of tactical innovation!"),
                mental_health_change=5,
            )
        return JudgeRuling(
            damage=int(actor.attack * 0.5),
            target_damage=int(actor.attack * 0.3),
            morale_change=-8,
            status_effects=["overconfident_backfire"],
            narrative_description=f"{actor.name}'s flashy move backfires! Sometimes simpler is better!",
            mental_health_change=-8,
        )

    def _judge_panic_flee(self, action, actor, opponent, team_morale):
        return JudgeRuling(
            damage=0,
            target_damage=0,
            morale_change=-20,
            status_effects=["fled", "cowardice"],
            narrative_description=(f"{actor.name} breaks under pressure and flees the battle! "
                                   f"Their teammates watch in disbelief!"),
            team_chemistry_change=-15,
            mental_health_change=-20,
        )

    def _judge_berserker_rage(self, action, actor, opponent, team_morale):
        return JudgeRuling(
            damage=int(actor.attack * 2),
            target_damage=int(actor.max_hp * 0.15),
            morale_change=0,
            status_effects=["berserker_exhaustion"],
            narrative_description=(f"{actor.name} enters a terrifying berserker rage! "
                                   f"Devastating but uncontrollable fury!"),
            mental_health_change=-15,
        )

    def _judge_protective_sacrifice(self, action, actor, opponent, team_morale):
        return JudgeRuling(
            damage=int(actor.attack * 0.8),
            target_damage=int(actor.max_hp * 0.4),
            morale_change=20,
            status_effects=["heroic_inspiration"],
            narrative_description=(f"{actor.name} throws themselves into harm's way to protect "
                                   f"their team! A noble sacrifice!"),
            team_chemistry_change=10,
            mental_health_change=10,
        )

    def _judge_unpredictable(self, action, actor, opponent, team_morale):
        return JudgeRuling(
            damage=int(actor.attack * 0.7),
            target_damage=int(opponent.attack * 0.8),
            morale_change=-5,
            status_effects=["unpredictable"],
            narrative_description=f"{actor.name} acts erratically! The battle becomes chaotic!",
            mental_health_change=-3,
        )
