"""
Tests for the coaching effect processor.

Tests cover:
1. Effectiveness (situational bonuses, traits, clamping)
2. Deltas applied to the psych profile
3. Character replies
4. Phase rules and the session log
5. Crisis triggers
"""

import asyncio

import pytest

from arena_backend.ai.dialogue_client import DialogueClient
from arena_backend.ai.providers import BaseProvider
from arena_backend.ai.responses import POSITIVE_COACHING_REPLIES
from arena_backend.ai.schemas import ProviderConfig
from arena_backend.commands.coaching import (
    CoachingEffectProcessor, CoachingFocus, CoachingIntensity, CoachingTrigger,
    calculate_effectiveness, detect_trigger, planned_deltas, rule_based_reply,
)
from arena_backend.errors import InvalidTransitionError
from arena_backend.game_logic.orchestrator import CombatRoundOrchestrator
from arena_backend.models.battle_state import BattlePhase, BattleSession, Team
from arena_backend.models.character import Fighter
from arena_backend.models.personality import Trait
from arena_backend.models.psych_profile import PSYCH_FIELDS, PsychProfile
from arena_backend.utils.rng import BattleRng, FixedRng

STRIKE = {"name": "Strike", "type": "attack", "power": 5}


def create_fighter(traits=(), **psych) -> Fighter:
    return Fighter(id="hero", name="Hero", traits=list(traits), psych=PsychProfile(**psych))


class UnreachableProvider(BaseProvider):
    """Live provider whose every call fails."""

    def __init__(self):
        super().__init__(ProviderConfig(name="anthropic", api_key_env="", model="test"))

    def generate(self, request, rng, timeout=4.0):
        return None, "Connection refused"


class TestCoachingEffectiveness:
    """Base 50 plus situational and trait modifiers, clamped to 10-100."""

    def test_baseline(self):
        """No modifiers applies: 50."""
        fighter = create_fighter()
        assert calculate_effectiveness(fighter, CoachingFocus.MOTIVATIONAL_SPEECH, CoachingIntensity.GENTLE) == 50

    def test_support_for_stressed_fighter(self):
        """Mental health support lands well on a stressed fighter."""
        fighter = create_fighter(stress=80, mental_health=35)
        effectiveness = calculate_effectiveness(
            fighter, CoachingFocus.MENTAL_HEALTH_SUPPORT, CoachingIntensity.GENTLE)
        assert effectiveness >= 80

    def test_gentle_with_off_plan_fighter(self):
        """Gentle coaching helps a fighter who has drifted off the plan."""
        fighter = create_fighter(gameplan_adherence=40)
        assert calculate_effectiveness(fighter, CoachingFocus.TACTICAL_ADJUSTMENT, CoachingIntensity.GENTLE) == 70

    def test_firm_with_disciplined_fighter(self):
        """Firm coaching works on a fighter already on the plan."""
        fighter = create_fighter(gameplan_adherence=90)
        assert calculate_effectiveness(fighter, CoachingFocus.TACTICAL_ADJUSTMENT, CoachingIntensity.FIRM) == 65

    def test_trait_modifiers(self):
        """Loyal loves speeches, Analytical loves tactics, Stubborn hates intensity."""
        loyal = create_fighter(traits=[Trait.LOYAL])
        analytical = create_fighter(traits=[Trait.ANALYTICAL])
        stubborn = create_fighter(traits=[Trait.STUBBORN])
        assert calculate_effectiveness(loyal, CoachingFocus.MOTIVATIONAL_SPEECH, CoachingIntensity.GENTLE) == 70
        assert calculate_effectiveness(analytical, CoachingFocus.TACTICAL_ADJUSTMENT, CoachingIntensity.GENTLE) == 65
        assert calculate_effectiveness(stubborn, CoachingFocus.MOTIVATIONAL_SPEECH, CoachingIntensity.INTENSE) == 25

    def test_stacked_bonuses(self):
        """Situational bonuses add up."""
        fighter = create_fighter(traits=[Trait.LOYAL], stress=80, gameplan_adherence=90)
        # 50 + 30 (stressed, support) + 15 (firm, on plan) = 95; Loyal adds nothing to support
        assert calculate_effectiveness(
            fighter, CoachingFocus.MENTAL_HEALTH_SUPPORT, CoachingIntensity.FIRM) == 95
        fighter = create_fighter(traits=[Trait.LOYAL, Trait.ANALYTICAL], mental_health=30, gameplan_adherence=30)
        # 50 + 25 (fragile, confidence) + 20 (gentle, off plan) = 95
        assert calculate_effectiveness(
            fighter, CoachingFocus.CONFIDENCE_BOOST, CoachingIntensity.GENTLE) == 95


class TestCoachingDeltas:
    """Focus deltas scaled by effectiveness."""

    def test_scaled_deltas(self):
        """80% effectiveness applies 80% of the focus deltas."""
        deltas = planned_deltas(CoachingFocus.MENTAL_HEALTH_SUPPORT, CoachingIntensity.GENTLE, 80)
        assert deltas == {"stress": -16, "mental_health": 12}

    def test_intense_adds_stress(self):
        """Intense coaching is stressful."""
        deltas = planned_deltas(CoachingFocus.CONFLICT_RESOLUTION, CoachingIntensity.INTENSE, 50)
        assert deltas == {"team_trust": 10, "communication": 5, "stress": 10}

    def test_intense_support_not_stressful(self):
        """Except when the point is to relieve stress."""
        deltas = planned_deltas(CoachingFocus.MENTAL_HEALTH_SUPPORT, CoachingIntensity.INTENSE, 50)
        assert deltas["stress"] == -10

    def test_stressed_fighter_relieved(self):
        """A stressed fighter given support gets calmer and steadier."""
        fighter = create_fighter(stress=80, mental_health=35)
        processor = CoachingEffectProcessor(FixedRng(0.0))

        session = processor.coach(fighter, CoachingFocus.MENTAL_HEALTH_SUPPORT,
                                  CoachingIntensity.GENTLE, BattlePhase.HUDDLE)

        assert session.effectiveness == 80
        assert fighter.psych.stress == 64
        assert fighter.psych.mental_health == 47
        assert session.deltas == {"stress": -16, "mental_health": 12}

    def test_stubborn_intense_backfires(self):
        """Stubborn fighters barely listen to intense coaching and get stressed."""
        fighter = create_fighter(traits=[Trait.STUBBORN])
        processor = CoachingEffectProcessor(FixedRng(0.0))

        session = processor.coach(fighter, CoachingFocus.MOTIVATIONAL_SPEECH,
                                  CoachingIntensity.INTENSE, BattlePhase.HUDDLE)

        assert session.effectiveness == 25
        assert session.deltas["stress"] == 9
        assert fighter.psych.stress == 29

    def test_deltas_clamped(self):
        """The log records the change actually applied."""
        fighter = create_fighter(stress=5)
        processor = CoachingEffectProcessor(FixedRng(0.0))
        session = processor.coach(fighter, CoachingFocus.MENTAL_HEALTH_SUPPORT,
                                  CoachingIntensity.GENTLE, BattlePhase.HUDDLE)
        assert fighter.psych.stress == 0
        assert session.deltas["stress"] == -5


class TestCoachingReplies:
    """Replies come from the fighter's state before coaching lands."""

    def test_overwhelmed_by_intensity(self):
        """Stressed fighters push back on intense coaching."""
        fighter = create_fighter(stress=80)
        reply = rule_based_reply(fighter, CoachingFocus.TACTICAL_ADJUSTMENT, CoachingIntensity.INTENSE, FixedRng(0.0))
        assert reply == "I can't handle pressure right now! Give me space!"

    def test_reply_from_pre_coaching_state(self):
        """The relieved fighter still answers as the stressed one who was coached."""
        fighter = create_fighter(stress=75)
        session = CoachingEffectProcessor(FixedRng(0.0)).coach(
            fighter, CoachingFocus.MENTAL_HEALTH_SUPPORT, CoachingIntensity.GENTLE, BattlePhase.HUDDLE)
        assert fighter.psych.stress < 70
        assert session.character_response == "Thank you... I really needed to hear that."

    def test_defiant_fighter(self):
        """Fighters far off the plan resist firm coaching and hedge on gentle coaching."""
        fighter = create_fighter(gameplan_adherence=30)
        firm = rule_based_reply(fighter, CoachingFocus.TACTICAL_ADJUSTMENT, CoachingIntensity.FIRM, FixedRng(0.0))
        gentle = rule_based_reply(fighter, CoachingFocus.TACTICAL_ADJUSTMENT, CoachingIntensity.GENTLE, FixedRng(0.0))
        assert firm == "You can't tell me what to do! I know what I'm doing!"
        assert gentle == "I'll consider it, but I still think my way is better."

    def test_prideful_fighter(self):
        """Prideful fighters take praise as their due."""
        fighter = create_fighter(traits=[Trait.PRIDEFUL])
        reply = rule_based_reply(fighter, CoachingFocus.CONFIDENCE_BOOST, CoachingIntensity.GENTLE, FixedRng(0.0))
        assert reply == "Of course I'm great! Tell me something I don't know."

    def test_positive_reply(self):
        """Everyone else answers from the positive pool."""
        reply = rule_based_reply(create_fighter(), CoachingFocus.MOTIVATIONAL_SPEECH,
                                 CoachingIntensity.GENTLE, FixedRng(0.0))
        assert reply == POSITIVE_COACHING_REPLIES[0]

    def test_mock_dialogue_passes_rule_reply(self):
        """With a mock dialogue client the rule-based reply is used as-is."""
        rng = FixedRng(0.0)
        processor = CoachingEffectProcessor(rng, DialogueClient(provider="mock", rng=rng))
        session = asyncio.run(processor.acoach(create_fighter(stress=80), CoachingFocus.MENTAL_HEALTH_SUPPORT,
                                               CoachingIntensity.GENTLE, BattlePhase.STRATEGY_SELECTION))
        assert session.character_response == "Thank you... I really needed to hear that."
        assert not session.degraded

    def test_failed_dialogue_still_coaches(self):
        """A dead dialogue service degrades the reply but the deltas still land once."""
        rng = FixedRng(0.0)
        dialogue = DialogueClient(provider="mock", rng=rng)
        dialogue.provider = UnreachableProvider()
        processor = CoachingEffectProcessor(rng, dialogue)
        fighter = create_fighter(stress=80)

        session = asyncio.run(processor.acoach(fighter, CoachingFocus.MENTAL_HEALTH_SUPPORT,
                                               CoachingIntensity.GENTLE, BattlePhase.HUDDLE))

        assert session.degraded
        assert session.character_response
        assert fighter.psych.stress == 80 + session.deltas["stress"]
        assert len(processor.log) == 1

    def test_acoach_rejected_during_combat(self):
        """The async path enforces the same phase rule."""
        processor = CoachingEffectProcessor(FixedRng(0.0))
        with pytest.raises(InvalidTransitionError):
            asyncio.run(processor.acoach(create_fighter(), CoachingFocus.CONFIDENCE_BOOST,
                                         CoachingIntensity.FIRM, BattlePhase.ROUND_COMBAT))


class TestCoachingRules:
    """Phases and the append-only log."""

    def test_rejected_during_combat(self):
        """Coaching is only allowed in the huddle and strategy selection."""
        fighter = create_fighter()
        processor = CoachingEffectProcessor(FixedRng(0.0))
        for phase in (BattlePhase.PRE_BATTLE, BattlePhase.ROUND_COMBAT, BattlePhase.ROUND_END, BattlePhase.BATTLE_END):
            with pytest.raises(InvalidTransitionError):
                processor.coach(fighter, CoachingFocus.MOTIVATIONAL_SPEECH, CoachingIntensity.GENTLE, phase)
        assert processor.log == ()
        assert fighter.psych == PsychProfile()

    def test_log_is_read_only(self):
        """The log is a tuple that only grows."""
        fighter = create_fighter()
        processor = CoachingEffectProcessor(FixedRng(0.0))
        processor.coach(fighter, CoachingFocus.MOTIVATIONAL_SPEECH, CoachingIntensity.GENTLE,
                        BattlePhase.HUDDLE, battle_id="b1", round_number=0, coach_message="You've got this")
        processor.coach(fighter, CoachingFocus.CONFLICT_RESOLUTION, CoachingIntensity.FIRM,
                        BattlePhase.STRATEGY_SELECTION, battle_id="b1", round_number=1)

        log = processor.log
        assert isinstance(log, tuple)
        assert [s.focus for s in log] == [CoachingFocus.MOTIVATIONAL_SPEECH, CoachingFocus.CONFLICT_RESOLUTION]
        assert log[0].coach_message == "You've got this"
        assert len(processor.sessions_for("hero")) == 2
        assert processor.sessions_for("villain") == []

    def test_session_to_dict(self):
        """Sessions serialize with enum values."""
        processor = CoachingEffectProcessor(FixedRng(0.0))
        session = processor.coach(create_fighter(), CoachingFocus.CONFIDENCE_BOOST,
                                  CoachingIntensity.FIRM, BattlePhase.HUDDLE)
        data = session.to_dict()
        assert data["focus"] == "confidence_boost"
        assert data["intensity"] == "firm"
        assert data["trigger"] == "player_requested"


class TestCoachingTriggers:
    """Why coaching is happening."""

    def test_breakdown(self):
        """A fighter in crisis triggers coaching."""
        assert detect_trigger(create_fighter(mental_health=20), 60) == CoachingTrigger.CHARACTER_BREAKDOWN

    def test_chemistry_crisis(self):
        """A toxic team triggers coaching."""
        assert detect_trigger(create_fighter(), 25) == CoachingTrigger.TEAM_CHEMISTRY_CRISIS

    def test_player_requested(self):
        """Otherwise the coach asked for it."""
        assert detect_trigger(create_fighter(), 60) == CoachingTrigger.PLAYER_REQUESTED


class TestCoachingDuringBattle:
    """Coaching and combat interleaved over a whole battle."""

    @pytest.mark.parametrize("seed", [3, 11, 42, 2024])
    def test_psych_stays_in_range(self, seed):
        """Every psych field stays within 0-100 after each coaching call and each round."""
        def fighter(name, **psych):
            return Fighter.from_dict({"name": name, "abilities": [STRIKE], "traits": ["Stubborn"],
                                      "psych": psych})

        session = BattleSession(
            battle_id="coached-battle",
            player=Team("player", "Heroes", [fighter("Hero", stress=95, mental_health=5, ego=98),
                                             fighter("Squire", stress=2, team_trust=99)]),
            opponent=Team("opponent", "Villains", [fighter("Villain", battle_focus=1, training=100),
                                                   fighter("Henchman", communication=0)]),
        )
        rng = BattleRng(seed)
        orchestrator = CombatRoundOrchestrator(session, rng, clock=lambda: 0.0)
        processor = CoachingEffectProcessor(rng)
        focuses = list(CoachingFocus)

        def assert_in_range():
            for member in session.all_fighters():
                for name in PSYCH_FIELDS:
                    assert 0 <= getattr(member.psych, name) <= 100, (member.id, name)

        orchestrator.start_battle()
        orchestrator.finish_huddle()
        step = 0
        while session.phase != BattlePhase.BATTLE_END:
            for member in session.all_fighters():
                if member.is_alive:
                    processor.coach(member, focuses[step % len(focuses)], CoachingIntensity.INTENSE,
                                    session.phase, round_number=session.current_round)
                    step += 1
                    assert_in_range()
            orchestrator.run_round()
            assert_in_range()

        assert step > 0
        assert session.outcome is not None
