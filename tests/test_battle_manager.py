"""
Tests for the battle registry.

Covers lookup, outbound events, per-battle isolation, coaching input
validation and rogue commentary.
"""

import asyncio
import time

import pytest

from arena_backend.ai.providers import BaseProvider
from arena_backend.ai.schemas import ProviderConfig
from arena_backend.errors import BattleNotFoundError, InvalidTransitionError
from arena_backend.game_logic.battle_manager import BattleManager, build_team
from arena_backend.models.battle_state import ActionKind, BattlePhase


def create_roster(name, max_hp=100, abilities=None, psych=None):
    fighter = {
        "name": name + " Fighter",
        "max_hp": max_hp,
        "abilities": abilities if abilities is not None else [{"name": "Strike", "type": "attack", "power": 5}],
    }
    if psych:
        fighter["psych"] = psych
    return {"name": name, "fighters": [fighter]}


def create_manager(**kwargs):
    return BattleManager(dialogue_mode="mock", **kwargs)


def play_out(manager, battle_id):
    async def scenario():
        await manager.start_battle(battle_id)
        manager.finish_huddle(battle_id)
        session = manager.get_session(battle_id)
        while session.phase != BattlePhase.BATTLE_END:
            await manager.proceed(battle_id)
        return session

    return asyncio.run(scenario())


def start(manager, battle_id):
    return asyncio.run(manager.start_battle(battle_id))


def coach(manager, battle_id, fighter_id, focus, intensity, **kwargs):
    return asyncio.run(manager.coach(battle_id, fighter_id, focus, intensity, **kwargs))


class SlowProvider(BaseProvider):
    """Live provider that answers correctly but takes its time."""

    def __init__(self, delay=0.5):
        super().__init__(ProviderConfig(name="anthropic", api_key_env="", model="test"))
        self.delay = delay

    def generate(self, request, rng, timeout=4.0):
        time.sleep(self.delay)
        return "Slow and steady!", None


class TestRegistry:
    """Creating, finding and removing battles."""

    def test_create_and_get(self):
        """A created battle can be looked up by id."""
        manager = create_manager()
        session = manager.create_battle(create_roster("Heroes"), create_roster("Villains"), battle_id="b1")
        assert manager.get_session("b1") is session
        assert len(manager) == 1
        assert manager.battle_ids() == ["b1"]

    def test_unknown_battle(self):
        """Unknown ids raise BattleNotFoundError."""
        with pytest.raises(BattleNotFoundError):
            create_manager().get("nope")

    def test_remove(self):
        """Removed battles are forgotten."""
        manager = create_manager()
        manager.create_battle(create_roster("Heroes"), create_roster("Villains"), battle_id="b1")
        manager.remove("b1")
        assert len(manager) == 0
        with pytest.raises(BattleNotFoundError):
            manager.get("b1")

    def test_round_cap_override(self):
        """round_cap passed at creation wins over the manager default."""
        manager = create_manager(round_cap=5)
        assert manager.create_battle(create_roster("A"), create_roster("B")).round_cap == 5
        assert manager.create_battle(create_roster("A"), create_roster("B"), round_cap=2).round_cap == 2

    def test_build_team(self):
        """Roster dicts become teams with canonical ids and relationships."""
        team = build_team("player", {
            "name": "Heroes",
            "chemistry": 64,
            "fighters": [{"name": "Joan of Arc"}, {"name": "La Hire"}],
            "relationships": [{"source_id": "Joan of Arc", "target_id": "La Hire", "strength": 40}],
        })
        assert team.member_ids == ["joan_of_arc", "la_hire"]
        assert team.chemistry == 64.0
        assert team.relationships.get_edge("joan_of_arc", "la_hire").strength == 40


class TestEvents:
    """Listeners see every outbound event."""

    def test_event_sequence(self):
        """A full battle emits start, round and end events in order."""
        manager = create_manager(round_cap=2)
        events = []
        manager.add_listener(lambda battle_id, event, data: events.append((battle_id, event)))
        manager.create_battle(create_roster("Heroes", max_hp=100000), create_roster("Villains", max_hp=100000),
                              seed=5, battle_id="b1")
        play_out(manager, "b1")

        names = [event for _, event in events]
        assert names == ["battle_start", "round_start", "round_end", "round_start", "round_end", "battle_end"]
        assert {battle_id for battle_id, _ in events} == {"b1"}

    def test_coaching_emits_chat_message(self):
        """Coaching pushes a chat_message with the character's reply."""
        manager = create_manager()
        captured = []
        manager.add_listener(lambda battle_id, event, data: captured.append((event, data)))
        manager.create_battle(create_roster("Heroes"), create_roster("Villains"), battle_id="b1")
        start(manager, "b1")
        coach(manager, "b1", "heroes_fighter", "mental_health_support", "gentle", message="Breathe.")

        event, data = captured[-1]
        assert event == "chat_message"
        assert data["character_id"] == "heroes_fighter"
        assert data["coach_message"] == "Breathe."
        assert data["character_response"]


class TestIsolation:
    """Battles never share state."""

    def test_same_seed_same_log(self):
        """Two battles with the same seed play out identically."""
        manager = create_manager()
        logs = []
        for battle_id in ("a", "b"):
            manager.create_battle(create_roster("Heroes"), create_roster("Villains"), seed=42, battle_id=battle_id)
            session = play_out(manager, battle_id)
            logs.append([r.to_dict() for r in session.round_log])
        assert logs[0] == logs[1]

    def test_coaching_one_battle_leaves_other_alone(self):
        """Psych changes stay inside their own battle."""
        manager = create_manager()
        for battle_id in ("a", "b"):
            manager.create_battle(create_roster("Heroes"), create_roster("Villains"), battle_id=battle_id)
            start(manager, battle_id)
        coach(manager, "a", "heroes_fighter", "mental_health_support", "gentle")

        stress_a = manager.get_session("a").get_fighter("heroes_fighter").psych.stress
        stress_b = manager.get_session("b").get_fighter("heroes_fighter").psych.stress
        assert stress_a < stress_b == 20


class TestCoachingInput:
    """Validation of coaching requests."""

    def test_bad_focus(self):
        """Unknown focus raises ValueError."""
        manager = create_manager()
        manager.create_battle(create_roster("Heroes"), create_roster("Villains"), battle_id="b1")
        start(manager, "b1")
        with pytest.raises(ValueError):
            coach(manager, "b1", "heroes_fighter", "yelling", "gentle")

    def test_bad_intensity(self):
        """Unknown intensity raises ValueError."""
        manager = create_manager()
        manager.create_battle(create_roster("Heroes"), create_roster("Villains"), battle_id="b1")
        start(manager, "b1")
        with pytest.raises(ValueError):
            coach(manager, "b1", "heroes_fighter", "confidence_boost", "furious")

    def test_unknown_fighter(self):
        """Coaching a fighter not in the battle is rejected."""
        manager = create_manager()
        manager.create_battle(create_roster("Heroes"), create_roster("Villains"), battle_id="b1")
        start(manager, "b1")
        with pytest.raises(InvalidTransitionError):
            coach(manager, "b1", "nobody", "confidence_boost", "gentle")

    def test_explicit_trigger(self):
        """A trigger given by the caller is recorded as-is."""
        manager = create_manager()
        manager.create_battle(create_roster("Heroes"), create_roster("Villains"), battle_id="b1")
        start(manager, "b1")
        result = coach(manager, "b1", "heroes_fighter", "confidence_boost", "gentle",
                       trigger="team_chemistry_crisis")
        assert result.trigger.value == "team_chemistry_crisis"

    def test_coaching_counts_as_social_interaction(self):
        """Each exchange during the battle adds to social interactions."""
        manager = create_manager()
        manager.create_battle(create_roster("Heroes"), create_roster("Villains"), battle_id="b1")
        start(manager, "b1")
        coach(manager, "b1", "heroes_fighter", "confidence_boost", "gentle")
        assert manager.get_session("b1").stats_for("heroes_fighter").social_interactions == 1


class TestRewards:
    """Post-battle rewards through the manager."""

    def test_rewards_before_end(self):
        """Rewards are refused until the battle ends."""
        manager = create_manager()
        manager.create_battle(create_roster("Heroes"), create_roster("Villains"), battle_id="b1")
        with pytest.raises(InvalidTransitionError):
            manager.calculate_rewards("b1")

    def test_rewards_for_every_fighter(self):
        """Each fighter gets rewards and skill progression."""
        manager = create_manager(round_cap=2)
        manager.create_battle(create_roster("Heroes"), create_roster("Villains"), seed=1, battle_id="b1")
        play_out(manager, "b1")
        results = manager.calculate_rewards("b1", {"heroes_fighter": {"combat": {"level": 3, "experience": 10}}})
        assert set(results) == {"heroes_fighter", "villains_fighter"}
        for result in results.values():
            assert result["rewards"]["xp_gained"] > 0
            assert result["skills"]["total_experience"] >= 0


class TestCommentary:
    """Rogue actions get a coach line and a character reaction."""

    def test_rogue_commentary(self):
        """Every rogue record has matching commentary."""
        manager = create_manager(round_cap=3)
        unstable = {"stress": 100, "mental_health": 0, "team_trust": 0, "battle_focus": 0}
        manager.create_battle(create_roster("Heroes", max_hp=100000, psych=unstable),
                              create_roster("Villains", max_hp=100000, psych=unstable),
                              seed=11, battle_id="b1")
        session = play_out(manager, "b1")
        entry = manager.get("b1")

        rogue = [r for r in session.round_log if r.action_kind == ActionKind.ROGUE]
        assert len(entry.commentary) == len(rogue)
        for line in entry.commentary:
            assert line["coach_response"]
            assert line["character_reaction"]


class TestDialogueOffTheLoop:
    """Slow dialogue never freezes the event loop."""

    def test_slow_provider_does_not_stall(self):
        """Battle cries and coaching replies from a slow service leave other tasks running."""
        manager = create_manager()
        manager.create_battle(create_roster("Heroes"), create_roster("Villains"), battle_id="b1")
        manager.get("b1").dialogue.provider = SlowProvider(delay=0.5)

        async def scenario():
            loop = asyncio.get_running_loop()
            gaps = []
            done = asyncio.Event()

            async def ticker():
                last = loop.time()
                while not done.is_set():
                    await asyncio.sleep(0.05)
                    now = loop.time()
                    gaps.append(now - last)
                    last = now

            task = asyncio.create_task(ticker())
            session = await manager.start_battle("b1")
            reply = await manager.coach("b1", "heroes_fighter", "confidence_boost", "gentle")
            done.set()
            await task
            return session, reply, gaps

        session, reply, gaps = asyncio.run(scenario())
        assert len(gaps) >= 10
        assert max(gaps) < 0.3
        assert "Slow and steady!" in session.announcements
        assert reply.character_response == "Slow and steady!"
        assert not session.degraded

    def test_reset_during_dialogue_drops_stale_lines(self):
        """Lines that arrive after a reset are not written into the fresh battle."""
        manager = create_manager()
        manager.create_battle(create_roster("Heroes"), create_roster("Villains"), battle_id="b1")
        manager.get("b1").dialogue.provider = SlowProvider(delay=0.2)

        async def scenario():
            starting = asyncio.create_task(manager.start_battle("b1"))
            await asyncio.sleep(0.05)
            manager.reset("b1")
            return await starting

        session = asyncio.run(scenario())
        assert session.phase == BattlePhase.PRE_BATTLE
        assert session.announcements == []
