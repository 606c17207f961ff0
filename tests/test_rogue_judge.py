"""
Tests for the rogue action judge.

Tests cover:
1. Which rogue action a character's psychology produces
2. Rulings for each action type
3. Ruling bounds
"""

import pytest

from arena_backend.game_logic.rogue_judge import (
    JudgeRuling, RogueAction, RogueActionJudge, RogueActionType,
)
from arena_backend.models.character import Fighter
from arena_backend.models.psych_profile import PsychProfile
from arena_backend.utils.rng import FixedRng


def create_fighter(fighter_id: str = "hero", attack: int = 20, max_hp: int = 100,
                   current_hp: int = None, **psych) -> Fighter:
    return Fighter(id=fighter_id, name=fighter_id.title(), attack=attack, max_hp=max_hp,
                   current_hp=current_hp, psych=PsychProfile(**psych))


class TestRogueActionGeneration:
    """First matching rule wins."""

    def setup_method(self):
        self.judge = RogueActionJudge(FixedRng(0.5))
        self.opponent = create_fighter("villain")

    def generate(self, actor, morale=75, trend="even", teammates=()):
        return self.judge.generate_action(actor, self.opponent, morale, trend, teammates).action_type

    def test_crisis_with_ego_goes_berserk(self):
        """Mental health crisis plus a huge ego: berserker rage."""
        assert self.generate(create_fighter(mental_health=20, ego=90)) == RogueActionType.BERSERKER_RAGE

    def test_crisis_without_ego_panics(self):
        """Mental health crisis otherwise: panic."""
        assert self.generate(create_fighter(mental_health=20, ego=50)) == RogueActionType.PANIC_FLEE

    def test_contempt_turns_on_teammate(self):
        """No trust and a big ego with a teammate nearby: friendly fire."""
        actor = create_fighter(team_trust=10, ego=80)
        ally = create_fighter("sidekick")
        action = self.judge.generate_action(actor, self.opponent, 75, "even", [actor, ally])
        assert action.action_type == RogueActionType.ATTACK_TEAMMATE
        assert action.target_id == "sidekick"

    def test_no_teammate_no_friendly_fire(self):
        """A lone fighter cannot attack a teammate."""
        actor = create_fighter(team_trust=10, ego=80)
        assert self.generate(actor, teammates=[actor]) != RogueActionType.ATTACK_TEAMMATE

    def test_loyal_fighter_protects_fallen_ally(self):
        """High trust with an ally below 30% HP: protective sacrifice."""
        actor = create_fighter(team_trust=85)
        ally = create_fighter("sidekick", current_hp=20)
        assert self.generate(actor, teammates=[actor, ally]) == RogueActionType.PROTECTIVE_SACRIFICE

    def test_proud_and_losing_charges(self):
        """Losing with a proud ego: reckless attack."""
        assert self.generate(create_fighter(ego=75), trend="losing") == RogueActionType.RECKLESS_ATTACK

    def test_disloyal_and_demoralized_refuses(self):
        """Low trust and low morale: refuses to fight."""
        assert self.generate(create_fighter(team_trust=20), morale=30) == RogueActionType.REFUSE_FIGHT

    def test_winning_showboat(self):
        """Winning with a huge ego: creative strategy."""
        assert self.generate(create_fighter(ego=90), trend="winning") == RogueActionType.CREATIVE_STRATEGY

    def test_default_unpredictable(self):
        """Nothing else fits: acts unpredictably."""
        assert self.generate(create_fighter()) == RogueActionType.ACTS_UNPREDICTABLY


class TestJudgeRulings:
    """Consequences per action type."""

    def setup_method(self):
        self.actor = create_fighter("hero", attack=20)
        self.opponent = create_fighter("villain", attack=30)

    def rule(self, action_type, rng_value=0.5, morale=75, target_id=None):
        judge = RogueActionJudge(FixedRng(rng_value))
        action = RogueAction(action_type, self.actor.id, self.actor.name, "desc", "reason",
                             target_id or self.opponent.id)
        return judge.judge(action, self.actor, self.opponent, morale)

    def test_every_action_type_has_a_ruling(self):
        """No rogue action falls through without consequences."""
        for action_type in RogueActionType:
            ruling = self.rule(action_type)
            assert isinstance(ruling, JudgeRuling)
            assert ruling.narrative_description
            assert ruling.target_damage_recipient is not None

    def test_reckless_attack(self):
        """Big damage both ways and the attacker is left vulnerable."""
        ruling = self.rule(RogueActionType.RECKLESS_ATTACK)
        assert ruling.damage == 30
        assert ruling.target_damage == 60
        assert ruling.target_damage_recipient == "hero"
        assert ruling.morale_change == -10
        assert "vulnerable" in ruling.status_effects

    def test_reckless_attack_low_morale(self):
        """A team already low on morale loses less."""
        assert self.rule(RogueActionType.RECKLESS_ATTACK, morale=50).morale_change == -5

    def test_teammate_attack_hits_teammate(self):
        """Friendly fire damages the teammate, not the opponent."""
        ruling = self.rule(RogueActionType.ATTACK_TEAMMATE, target_id="sidekick")
        assert ruling.damage == 0
        assert ruling.target_damage == 16
        assert ruling.target_damage_recipient == "sidekick"
        assert ruling.team_chemistry_change == -30

    def test_creative_strategy_success(self):
        """Roll above 0.3 succeeds."""
        ruling = self.rule(RogueActionType.CREATIVE_STRATEGY, rng_value=0.5)
        assert ruling.damage == 26
        assert ruling.target_damage == 0
        assert ruling.morale_change == 15

    def test_creative_strategy_backfire(self):
        """Roll at or below 0.3 backfires."""
        ruling = self.rule(RogueActionType.CREATIVE_STRATEGY, rng_value=0.1)
        assert ruling.damage == 10
        assert ruling.target_damage == 6
        assert "overconfident_backfire" in ruling.status_effects

    def test_panic_flee(self):
        """Fleeing deals nothing and costs the most mental health."""
        ruling = self.rule(RogueActionType.PANIC_FLEE)
        assert ruling.damage == 0
        assert ruling.mental_health_change == -20
        assert "fled" in ruling.status_effects

    def test_protective_sacrifice(self):
        """A sacrifice hurts the actor but lifts the team."""
        ruling = self.rule(RogueActionType.PROTECTIVE_SACRIFICE)
        assert ruling.target_damage == 40
        assert ruling.morale_change == 20
        assert ruling.team_chemistry_change == 10


class TestJudgeRulingBounds:
    """JudgeRuling normalizes its numbers."""

    def test_negative_damage_floored(self):
        """Damage is never negative."""
        ruling = JudgeRuling(damage=-5, target_damage=-1)
        assert ruling.damage == 0
        assert ruling.target_damage == 0

    def test_morale_change_clamped(self):
        """Morale change stays in [-100, 100]."""
        assert JudgeRuling(morale_change=150).morale_change == 100
        assert JudgeRuling(morale_change=-150).morale_change == -100

    def test_rogue_action_catalogue(self):
        """Every action maps to a deviation category and severity."""
        action = RogueAction(RogueActionType.ATTACK_TEAMMATE, "hero", "Hero", "d", "r", "sidekick")
        data = action.to_dict()
        assert data["deviation_type"] == "friendly_fire"
        assert data["severity"] == "extreme"
