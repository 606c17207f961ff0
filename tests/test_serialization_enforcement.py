"""
Serialization enforcement tests.

These tests ensure that ALL instance attributes on battle objects
are included in to_dict(). They fail CI when someone adds a field but
forgets serialization.

Run after adding ANY new field to ANY model class.

The rule: **"If it exists on the object, it must serialize."**
"""

from dataclasses import fields, is_dataclass
from typing import Any, Set

import pytest

from arena_backend.commands.coaching import CoachingEffectProcessor, CoachingFocus, CoachingIntensity
from arena_backend.game_logic.adherence import AdherenceEvaluator
from arena_backend.game_logic.morale import MoraleLedger
from arena_backend.game_logic.orchestrator import CombatRoundOrchestrator
from arena_backend.game_logic.rogue_judge import JudgeRuling, RogueAction, RogueActionType
from arena_backend.models.battle_state import BattlePhase, BattleSession, StrategySelection, Team
from arena_backend.models.character import Ability, AbilityType, Fighter
from arena_backend.models.personality import Trait
from arena_backend.models.psych_profile import PsychProfile
from arena_backend.models.relationship import RelationshipEdge, RelationshipGraph, RelationshipType
from arena_backend.progression.performance import BattlePerformance
from arena_backend.progression.rewards import RewardCalculator
from arena_backend.progression.skills import SkillProgressionEngine, default_skills
from arena_backend.utils.rng import FixedRng


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def get_instance_attributes(obj: Any) -> Set[str]:
    """
    Get all instance attributes, excluding private/dunder.

    For dataclasses, uses fields().
    For regular classes, uses vars().
    """
    if is_dataclass(obj):
        return {f.name for f in fields(obj)}
    return {k for k in vars(obj).keys() if not k.startswith('_')}


def get_serialized_keys(obj: Any) -> Set[str]:
    """Get keys from to_dict() output."""
    if not hasattr(obj, 'to_dict'):
        raise AttributeError(f"{type(obj).__name__} has no to_dict() method")
    return set(obj.to_dict().keys())


def assert_fully_serialized(obj: Any) -> None:
    missing = get_instance_attributes(obj) - get_serialized_keys(obj)
    assert not missing, f"{type(obj).__name__}.to_dict() is missing: {sorted(missing)}"


def create_fully_populated_fighter() -> Fighter:
    """Fighter with every field set to a non-default value."""
    return Fighter(
        id="Joan of Arc",
        name="Joan of Arc",
        level=7,
        max_hp=140,
        current_hp=90,
        attack=31,
        defense=17,
        speed=64,
        crit_chance=0.2,
        abilities=[Ability("Holy Strike", AbilityType.ATTACK, 12, "Smite")],
        traits=[Trait.LOYAL, Trait.STUBBORN],
        psych=PsychProfile(stress=44, ego=61, mental_health=72),
        status_effects={"inspired"},
    )


def create_finished_session() -> BattleSession:
    """A battle played to the end, so every log and report is populated."""
    session = BattleSession(
        battle_id="serialization",
        player=Team("player", "Heroes", [create_fully_populated_fighter()],
                    relationships=RelationshipGraph([
                        RelationshipEdge("joan_of_arc", "la_hire", RelationshipType.ALLY, 80)])),
        opponent=Team("opponent", "Villains", [Fighter(id="villain", name="Villain", max_hp=30)]),
    )
    orchestrator = CombatRoundOrchestrator(session, FixedRng(0.5), clock=lambda: 0.0)
    orchestrator.run_to_completion()
    return session


# ============================================================================
# MODELS
# ============================================================================

class TestModelSerializationEnforcement:
    """Models that cross the API boundary."""

    def test_all_fighter_fields_serialized(self):
        """Fighter.to_dict() covers every field."""
        assert_fully_serialized(create_fully_populated_fighter())

    def test_fighter_roundtrip(self):
        """from_dict(to_dict()) restores the fighter."""
        fighter = create_fully_populated_fighter()
        restored = Fighter.from_dict(fighter.to_dict())
        assert restored.to_dict() == fighter.to_dict()

    def test_all_psych_fields_serialized(self):
        """Every psych attribute serializes."""
        assert_fully_serialized(PsychProfile(stress=90))

    def test_all_ability_fields_serialized(self):
        """Ability.to_dict() covers every field."""
        assert_fully_serialized(Ability("Mend", AbilityType.SUPPORT, 10, "Heal"))

    def test_all_relationship_fields_serialized(self):
        """RelationshipEdge.to_dict() covers every field."""
        edge = RelationshipEdge("a", "b", RelationshipType.MENTOR, 30, {"attack": 1.1})
        assert_fully_serialized(edge)
        assert RelationshipEdge.from_dict(edge.to_dict()).to_dict() == edge.to_dict()

    def test_all_strategy_selection_fields_serialized(self):
        """StrategySelection.to_dict() covers every field."""
        assert_fully_serialized(StrategySelection("Fireball", "Block", "Focus", ["special"]))

    def test_performance_roundtrip(self):
        """BattlePerformance round-trips through to_dict/from_dict."""
        performance = BattlePerformance(character_id="hero", is_victory=True, damage_dealt=40, battle_duration=12.5)
        assert_fully_serialized(performance)
        assert BattlePerformance.from_dict(performance.to_dict()) == performance


# ============================================================================
# BATTLE STATE
# ============================================================================

class TestBattleSerializationEnforcement:
    """Battle session and everything it logs."""

    def setup_method(self):
        self.session = create_finished_session()

    def test_all_session_fields_serialized(self):
        """BattleSession.to_dict() covers every field."""
        assert_fully_serialized(self.session)

    def test_all_team_fields_serialized(self):
        """Team.to_dict() covers every field."""
        assert_fully_serialized(self.session.player)

    def test_all_record_fields_serialized(self):
        """CombatRoundRecord.to_dict() covers every field."""
        assert self.session.round_log
        for record in self.session.round_log:
            assert_fully_serialized(record)

    def test_all_outcome_fields_serialized(self):
        """BattleOutcome.to_dict() covers every field."""
        assert_fully_serialized(self.session.outcome)

    def test_all_stats_fields_serialized(self):
        """FighterStats.to_dict() covers every field."""
        for stats in self.session.stats.values():
            assert_fully_serialized(stats)

    def test_all_morale_event_fields_serialized(self):
        """MoraleEvent.to_dict() covers every field."""
        ledger = MoraleLedger()
        ledger.apply(5, "critical hit", 1, ["hero"])
        assert_fully_serialized(ledger.history[0])

    def test_session_to_dict_is_plain_data(self):
        """The full dump contains no enums or sets."""
        def walk(value):
            if isinstance(value, dict):
                for key, item in value.items():
                    assert isinstance(key, str)
                    walk(item)
            elif isinstance(value, list):
                for item in value:
                    walk(item)
            else:
                assert value is None or isinstance(value, (str, int, float, bool)), repr(value)

        walk(self.session.to_dict())


# ============================================================================
# ENGINE RESULTS
# ============================================================================

class TestResultSerializationEnforcement:
    """Values produced by the engine and progression calculators."""

    def test_adherence_result_serialized(self):
        """AdherenceResult.to_dict() covers every field."""
        result = AdherenceEvaluator(FixedRng(0.5)).evaluate("hero", PsychProfile(stress=90))
        assert_fully_serialized(result)

    def test_rogue_action_and_ruling_serialized(self):
        """RogueAction and JudgeRuling cover every field."""
        assert_fully_serialized(RogueAction(RogueActionType.PANIC_FLEE, "hero", "Hero", "runs", "fear", "villain"))
        assert_fully_serialized(JudgeRuling(damage=3, status_effects=["fled"]))

    def test_coaching_session_serialized(self):
        """CoachingSession.to_dict() covers every field."""
        session = CoachingEffectProcessor(FixedRng(0.0)).coach(
            create_fully_populated_fighter(), CoachingFocus.CONFIDENCE_BOOST,
            CoachingIntensity.FIRM, BattlePhase.HUDDLE)
        assert_fully_serialized(session)

    def test_rewards_serialized(self):
        """BattleRewards, PerformanceMetrics and skill results cover every field."""
        performance = BattlePerformance(character_id="hero", is_victory=True, damage_dealt=80, total_rounds=3)
        rewards = RewardCalculator().calculate(performance)
        assert_fully_serialized(rewards)
        assert_fully_serialized(rewards.performance)

        progression = SkillProgressionEngine().calculate(performance, default_skills())
        assert_fully_serialized(progression)
        for gain in progression.skill_gains:
            assert_fully_serialized(gain)
