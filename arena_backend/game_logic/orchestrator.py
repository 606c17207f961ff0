"""
Combat Round Orchestrator

The battle state machine:

    pre_battle -> huddle -> strategy_selection -> round_combat -> round_end
                                ^                                   |
                                +---------- (next round) -----------+
                                                                    |
                                                               battle_end

advance(input) is the single step function. It is driven by an external
clock (HTTP calls, websocket events, timers, tests) and never sleeps or
schedules anything itself.

Per round, for every living fighter in initiative order:
    AdherenceEvaluator -> ObedienceArbiter -> scripted ability | RogueActionJudge
then damage/healing is applied (HP clamped to [0, max_hp]), a
CombatRoundRecord is appended and the acting team's morale is updated.

The battle ends when any fighter reaches 0 HP, or in a draw once the
round cap is reached.
"""

import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from arena_backend.errors import InvalidTransitionError
from arena_backend.game_logic.adherence import AdherenceEvaluator, AdherenceResult
from arena_backend.game_logic.chemistry import (
    analyze_chemistry_evolution, clamp_chemistry, compute_team_chemistry,
    evolve_relationships, get_chemistry_band,
)
from arena_backend.game_logic.morale import STARTING_MORALE, get_battle_trend, get_morale_modifier
from arena_backend.game_logic.obedience import ObedienceArbiter, ObedienceDecision
from arena_backend.game_logic.rogue_judge import RogueActionJudge, RogueActionType
from arena_backend.game_logic.strategy import apply_selection, auto_fill
from arena_backend.models.battle_state import (
    ActionKind, BattleOutcome, BattlePhase, BattleSession, CombatRoundRecord,
    StrategySelection, Team,
)
from arena_backend.models.character import FALLBACK_ABILITIES, FOCUS_ACTION, Ability, AbilityType, Fighter
from arena_backend.progression.performance import BattlePerformance
from arena_backend.utils.rng import BattleRng

logger = logging.getLogger("arena.engine")

# Initiative
INITIATIVE_JITTER = 20

# Scripted resolution
ATTACK_VARIANCE = 10
DEFENSE_VARIANCE = 5
CRITICAL_MULTIPLIER = 1.5
CRITICAL_MORALE_BONUS = 5
VULNERABLE_DEFENSE_FACTOR = 0.5

# A single hit above this share of max HP rattles the defender
HEAVY_HIT_SHARE = 0.2
HEAVY_HIT_STRESS = 5


class InputKind(Enum):
    START_BATTLE = "start_battle"
    FINISH_HUDDLE = "finish_huddle"
    SELECT_STRATEGY = "select_strategy"
    PROCEED = "proceed"
    TIMER_EXPIRED = "timer_expired"
    RESOLVE_ROUND = "resolve_round"
    END_ROUND = "end_round"
    RESET = "reset"


@dataclass
class BattleInput:
    """One step of input for advance()."""
    kind: InputKind
    fighter_id: Optional[str] = None
    category: Optional[str] = None
    ability_name: Optional[str] = None


def calculate_mental_speed_modifier(fighter: Fighter) -> int:
    """Stress slows a fighter down; stability and focus speed them up."""
    psych = fighter.psych
    modifier = (-0.2 * psych.stress
                + 0.1 * (psych.mental_health - 50)
                + 0.15 * (psych.battle_focus - 50))
    return math.floor(modifier)


def pick_target(enemies: List[Fighter]) -> Optional[Fighter]:
    """Living enemy with the lowest current HP (roster order breaks ties)."""
    living = [e for e in enemies if e.is_alive]
    if not living:
        return None
    return min(living, key=lambda e: e.current_hp)


class CombatRoundOrchestrator:
    """
    Drives one battle. One orchestrator per BattleSession; it owns the
    battle's evaluator, arbiter, judge and random source.
    """

    def __init__(self, session: BattleSession, rng: BattleRng,
                 clock: Callable[[], float] = time.monotonic):
        self.session = session
        self.rng = rng
        self.clock = clock
        self.evaluator = AdherenceEvaluator(rng)
        self.arbiter = ObedienceArbiter(rng)
        self.judge = RogueActionJudge(rng)
        self._initial_hp: Dict[str, int] = {f.id: f.current_hp for f in session.all_fighters()}
        self._initial_chemistry: Dict[str, float] = {t.side: t.chemistry for t in session.teams()}
        self._initial_strengths: Dict[str, List[Tuple[str, str, int]]] = {
            t.side: [(e.source_id, e.target_id, e.strength) for e in t.relationships.edges()]
            for t in session.teams()
        }
        self._handlers = {
            InputKind.START_BATTLE: (self.start_battle, (BattlePhase.PRE_BATTLE,)),
            InputKind.FINISH_HUDDLE: (self.finish_huddle, (BattlePhase.HUDDLE,)),
            InputKind.SELECT_STRATEGY: (self._select_from_input, (BattlePhase.STRATEGY_SELECTION,)),
            InputKind.PROCEED: (self.proceed, (BattlePhase.STRATEGY_SELECTION,)),
            InputKind.TIMER_EXPIRED: (self.timer_expired, (BattlePhase.STRATEGY_SELECTION,)),
            InputKind.RESOLVE_ROUND: (self.resolve_round, (BattlePhase.ROUND_COMBAT,)),
            InputKind.END_ROUND: (self.end_round, (BattlePhase.ROUND_END,)),
            InputKind.RESET: (self.reset, tuple(BattlePhase)),
        }

    # ════════════════════════════════════════════════════════════
    # STEP FUNCTION
    # ════════════════════════════════════════════════════════════

    def advance(self, battle_input: BattleInput) -> BattleSession:
        """
        Apply one input to the battle.

        Raises:
            InvalidTransitionError: Input not valid in the current phase
        """
        handler, allowed = self._handlers[battle_input.kind]
        self._require_phase(battle_input.kind.value, *allowed)
        if battle_input.kind == InputKind.SELECT_STRATEGY:
            handler(battle_input)
        else:
            handler()
        return self.session

    def _require_phase(self, action: str, *phases: BattlePhase) -> None:
        if self.session.phase not in phases:
            raise InvalidTransitionError(self.session.phase.value, action)

    # ════════════════════════════════════════════════════════════
    # PHASES
    # ════════════════════════════════════════════════════════════

    def start_battle(self) -> None:
        """pre_battle -> huddle: reset morale, compute chemistry, open the huddle."""
        self._require_phase("start battle", BattlePhase.PRE_BATTLE)
        session = self.session
        for team in session.teams():
            team.morale.reset(STARTING_MORALE)
            if len(team.relationships):
                team.chemistry = compute_team_chemistry(
                    team.relationships, team.member_ids, [f.psych for f in team.fighters]
                )
            band, description = get_chemistry_band(team.chemistry)
            session.announcements.append(
                f"{team.name} huddles up. Team chemistry {team.chemistry:.0f}% ({band}): {description}"
            )
        for fighter in session.all_fighters():
            session.stats_for(fighter.id)
        session.started_at = self.clock()
        session.phase = BattlePhase.HUDDLE
        logger.info("Battle %s started: %s vs %s", session.battle_id, session.player.name, session.opponent.name)

    def finish_huddle(self) -> None:
        """huddle -> strategy_selection for round 1."""
        self._require_phase("finish huddle", BattlePhase.HUDDLE)
        self.session.current_round = 1
        self._open_strategy_selection()

    def select_strategy(self, fighter_id: str, category: str, ability_name: str) -> str:
        """
        Record the coach's pick for one fighter and category.

        Returns:
            The accepted (possibly auto-corrected) ability name
        """
        self._require_phase("select strategy", BattlePhase.STRATEGY_SELECTION)
        fighter = self.session.get_fighter(fighter_id)
        if fighter is None:
            raise InvalidTransitionError(self.session.phase.value, f"select strategy for unknown fighter '{fighter_id}'")
        selection = self.session.selections.setdefault(fighter.id, StrategySelection())
        return apply_selection(selection, fighter, category, ability_name)

    def _select_from_input(self, battle_input: BattleInput) -> None:
        self.select_strategy(battle_input.fighter_id, battle_input.category, battle_input.ability_name)

    def proceed(self) -> None:
        """strategy_selection -> round_combat on the coach's explicit go."""
        self._require_phase("proceed", BattlePhase.STRATEGY_SELECTION)
        self._fill_missing_selections()
        self.session.phase = BattlePhase.ROUND_COMBAT

    def timer_expired(self) -> None:
        """strategy_selection -> round_combat when the selection window closes."""
        self._require_phase("expire timer", BattlePhase.STRATEGY_SELECTION)
        filled = self._fill_missing_selections()
        if filled:
            self.session.announcements.append(
                "Time's up! Missing strategies were chosen automatically. Stay sharp, coach!"
            )
        self.session.phase = BattlePhase.ROUND_COMBAT

    def resolve_round(self) -> List[CombatRoundRecord]:
        """round_combat -> round_end: every living fighter acts once, in initiative order."""
        self._require_phase("resolve round", BattlePhase.ROUND_COMBAT)
        session = self.session
        round_number = session.current_round

        for fighter in session.all_fighters():
            fighter.status_effects.clear()

        records = []
        for actor in self._initiative_order():
            if self._any_fighter_down():
                break
            if not actor.is_alive:
                continue
            record = self._resolve_action(actor, round_number)
            if record is not None:
                session.append_record(record)
                records.append(record)

        for fighter in session.all_fighters():
            if fighter.is_alive:
                session.stats_for(fighter.id).rounds_survived += 1

        session.phase = BattlePhase.ROUND_END
        return records

    def end_round(self) -> None:
        """round_end -> battle_end (knockout or round cap) or the next strategy_selection."""
        self._require_phase("end round", BattlePhase.ROUND_END)
        session = self.session
        player_down = session.player.has_fallen_fighter
        opponent_down = session.opponent.has_fallen_fighter

        if player_down and opponent_down:
            self._finish_battle("draw", "mutual_destruction")
        elif player_down:
            self._finish_battle("opponent", "total_victory")
        elif opponent_down:
            self._finish_battle("player", "total_victory")
        elif session.current_round >= session.round_cap:
            self._finish_battle("draw", "time_limit")
        else:
            session.current_round += 1
            self._open_strategy_selection()

    def reset(self) -> None:
        """
        Any phase -> pre_battle.

        Restores starting HP, team chemistry and relationship strengths
        and clears the battle's logs. Psych profiles persist. generation
        is bumped so pending timers become stale.
        """
        session = self.session
        for fighter in session.all_fighters():
            fighter.current_hp = self._initial_hp.get(fighter.id, fighter.max_hp)
            fighter.status_effects.clear()
        for team in session.teams():
            team.morale.reset(STARTING_MORALE)
            team.chemistry = self._initial_chemistry[team.side]
            for source_id, target_id, strength in self._initial_strengths[team.side]:
                team.relationships.get_edge(source_id, target_id).strength = strength
        session.phase = BattlePhase.PRE_BATTLE
        session.current_round = 0
        session.round_log = []
        session.selections = {}
        session.last_round_rogue = {}
        session.stats = {}
        session.adherence_events = []
        session.announcements = []
        session.outcome = None
        session.chemistry_report = None
        session.performances = {}
        session.degraded = False
        session.started_at = None
        session.ended_at = None
        session.generation += 1
        self.evaluator.history.clear()
        logger.info("Battle %s reset (generation %d)", session.battle_id, session.generation)

    # ════════════════════════════════════════════════════════════
    # CONVENIENCE DRIVERS
    # ════════════════════════════════════════════════════════════

    def run_round(self) -> List[CombatRoundRecord]:
        """proceed + resolve + end for the current round."""
        self.proceed()
        records = self.resolve_round()
        self.end_round()
        return records

    def run_to_completion(self) -> BattleOutcome:
        """Play every remaining round with auto-filled strategies."""
        if self.session.phase == BattlePhase.PRE_BATTLE:
            self.start_battle()
        if self.session.phase == BattlePhase.HUDDLE:
            self.finish_huddle()
        while self.session.phase != BattlePhase.BATTLE_END:
            if self.session.phase == BattlePhase.STRATEGY_SELECTION:
                self.run_round()
            elif self.session.phase == BattlePhase.ROUND_COMBAT:
                self.resolve_round()
                self.end_round()
            elif self.session.phase == BattlePhase.ROUND_END:
                self.end_round()
        return self.session.outcome

    def note_coaching(self, fighter_id: str) -> None:
        """Count a coaching exchange toward the fighter's social interactions."""
        if self.session.phase not in (BattlePhase.PRE_BATTLE, BattlePhase.BATTLE_END):
            self.session.stats_for(fighter_id).social_interactions += 1

    # ════════════════════════════════════════════════════════════
    # ROUND INTERNALS
    # ════════════════════════════════════════════════════════════

    def _open_strategy_selection(self) -> None:
        self.session.selections = {
            f.id: StrategySelection() for f in self.session.all_fighters() if f.is_alive
        }
        self.session.phase = BattlePhase.STRATEGY_SELECTION

    def _fill_missing_selections(self) -> List[str]:
        filled = []
        for fighter in self.session.all_fighters():
            if not fighter.is_alive:
                continue
            selection = self.session.selections.setdefault(fighter.id, StrategySelection())
            for category in auto_fill(selection, fighter, self.rng):
                filled.append(f"{fighter.id}:{category}")
        return filled

    def _initiative_order(self) -> List[Fighter]:
        """Sort living fighters by speed + jitter + mental speed modifier (highest first)."""
        rolls = []
        for index, fighter in enumerate(self.session.all_fighters()):
            if not fighter.is_alive:
                continue
            initiative = (fighter.speed
                          + self.rng.uniform(0, INITIATIVE_JITTER)
                          + calculate_mental_speed_modifier(fighter))
            rolls.append((-initiative, index, fighter))
        rolls.sort(key=lambda roll: (roll[0], roll[1]))
        return [fighter for _, _, fighter in rolls]

    def _any_fighter_down(self) -> bool:
        return any(not f.is_alive for f in self.session.all_fighters())

    def _resolve_action(self, actor: Fighter, round_number: int) -> Optional[CombatRoundRecord]:
        session = self.session
        team = session.team_of(actor.id)
        enemy_team = session.enemy_team_of(actor.id)
        defender = pick_target(enemy_team.fighters)
        if defender is None:
            return None

        last_rogue = session.last_round_rogue.get(actor.id, False)
        adherence = self.evaluator.evaluate(actor.id, actor.psych,
                                            is_last_round_rogue=last_rogue,
                                            is_injured=actor.is_injured)
        event = self.evaluator.record(adherence, actor.psych, session.battle_id, round_number)
        if event is not None:
            session.adherence_events.append(event)

        decision = self.arbiter.decide(team.morale.current_morale, actor.is_injured, last_rogue, adherence)
        if decision.will_obey:
            record = self._resolve_scripted(actor, defender, team, round_number, adherence, decision)
        else:
            record = self._resolve_rogue(actor, defender, team, enemy_team, round_number, adherence, decision)
        session.last_round_rogue[actor.id] = not decision.will_obey

        team.morale.apply(record.morale_impact, record.rogue_action or record.ability_name or "action",
                          round_number, [actor.id])
        return record

    def _selected_ability(self, fighter: Fighter, category: str) -> Optional[Ability]:
        selection = self.session.selections.get(fighter.id)
        name = getattr(selection, category, None) if selection else None
        if not name:
            return None
        ability = fighter.get_ability(name)
        if ability is None:
            for fallback in FALLBACK_ABILITIES.values():
                if fallback.name == name:
                    return fallback
        return ability

    def _resolve_scripted(self, actor: Fighter, defender: Fighter, team: Team, round_number: int,
                          adherence: AdherenceResult, decision: ObedienceDecision) -> CombatRoundRecord:
        session = self.session
        actor_stats = session.stats_for(actor.id)
        actor_stats.strategic_decisions += 1

        base = dict(
            round=round_number,
            attacker_id=actor.id,
            defender_id=defender.id,
            action_kind=ActionKind.SCRIPTED,
            adherence_score=adherence.score,
            adherence_tier=adherence.tier.value,
            obedience_probability=decision.probability,
        )

        if not actor.abilities:
            logger.info("%s has no abilities; substituting %s", actor.id, FOCUS_ACTION.name)
            actor_stats.spiritual_moments += 1
            return CombatRoundRecord(
                damage=0, morale_impact=0,
                narrative=f"{actor.name} has nothing prepared and uses {FOCUS_ACTION.name}.",
                new_attacker_hp=actor.current_hp, new_defender_hp=defender.current_hp,
                ability_name=FOCUS_ACTION.name, **base,
            )

        ability = self._selected_ability(actor, "attack") or FALLBACK_ABILITIES[AbilityType.ATTACK]
        actor_stats.record_ability(ability.name, round_number)

        if ability.ability_type == AbilityType.SUPPORT:
            healed = actor.heal(ability.power)
            actor_stats.spiritual_moments += 1
            return CombatRoundRecord(
                damage=0, morale_impact=0,
                narrative=f"{actor.name} uses {ability.name} and recovers {healed} HP.",
                new_attacker_hp=actor.current_hp, new_defender_hp=defender.current_hp,
                ability_name=ability.name, healing=healed, **base,
            )

        guard = self._selected_ability(defender, "defense")
        defense = defender.defense + (guard.power if guard else 0)
        if "vulnerable" in defender.status_effects:
            defense *= VULNERABLE_DEFENSE_FACTOR

        raw = (actor.attack + ability.power + self.rng.random() * ATTACK_VARIANCE
               - (defense + self.rng.random() * DEFENSE_VARIANCE))
        critical = self.rng.chance(actor.crit_chance)
        if critical:
            special = self._selected_ability(actor, "special")
            raw = (raw + (special.power if special else 0)) * CRITICAL_MULTIPLIER
            actor_stats.critical_hits += 1
        raw *= get_morale_modifier(team.morale.current_morale)

        if raw < 1:
            session.stats_for(defender.id).perfect_blocks += 1
        damage = max(1, math.floor(raw))
        dealt = defender.take_damage(damage)
        actor_stats.damage_dealt += dealt
        session.stats_for(defender.id).damage_taken += dealt
        self._rattle(defender, dealt)

        crit_text = " Critical hit!" if critical else ""
        return CombatRoundRecord(
            damage=dealt,
            morale_impact=CRITICAL_MORALE_BONUS if critical else 0,
            narrative=f"{actor.name} uses {ability.name} for {dealt} damage!{crit_text}",
            new_attacker_hp=actor.current_hp, new_defender_hp=defender.current_hp,
            ability_name=ability.name, critical=critical, **base,
        )

    def _resolve_rogue(self, actor: Fighter, defender: Fighter, team: Team, enemy_team: Team,
                       round_number: int, adherence: AdherenceResult,
                       decision: ObedienceDecision) -> CombatRoundRecord:
        session = self.session
        morale = team.morale.current_morale
        trend = get_battle_trend(morale, enemy_team.morale.current_morale)

        action = self.judge.generate_action(actor, defender, morale, trend, team.fighters)
        ruling = self.judge.judge(action, actor, defender, morale)

        dealt = defender.take_damage(ruling.damage)
        recipient = session.get_fighter(ruling.target_damage_recipient) or actor
        self_damage = recipient.take_damage(ruling.target_damage)

        actor.status_effects.update(ruling.status_effects)
        actor.psych.modify("mental_health", ruling.mental_health_change)
        if ruling.team_chemistry_change:
            team.chemistry = clamp_chemistry(team.chemistry + ruling.team_chemistry_change)

        actor_stats = session.stats_for(actor.id)
        actor_stats.strategy_deviations += 1
        actor_stats.damage_dealt += dealt
        session.stats_for(defender.id).damage_taken += dealt
        session.stats_for(recipient.id).damage_taken += self_damage
        if dealt == 0:
            session.stats_for(defender.id).successful_dodges += 1
        if action.action_type == RogueActionType.PROTECTIVE_SACRIFICE:
            actor_stats.social_interactions += 1
        self._rattle(defender, dealt)

        logger.info("%s went rogue (%s) in round %d", actor.id, action.action_type.value, round_number)
        return CombatRoundRecord(
            round=round_number,
            attacker_id=actor.id,
            defender_id=defender.id,
            action_kind=ActionKind.ROGUE,
            damage=dealt,
            morale_impact=ruling.morale_change,
            narrative=ruling.narrative_description,
            new_attacker_hp=actor.current_hp,
            new_defender_hp=defender.current_hp,
            rogue_action=action.action_type.value,
            adherence_score=adherence.score,
            adherence_tier=adherence.tier.value,
            obedience_probability=decision.probability,
            self_damage=self_damage,
        )

    def _rattle(self, defender: Fighter, damage: int) -> None:
        if damage > defender.max_hp * HEAVY_HIT_SHARE:
            defender.psych.modify("stress", HEAVY_HIT_STRESS)

    # ════════════════════════════════════════════════════════════
    # BATTLE END
    # ════════════════════════════════════════════════════════════

    def _finish_battle(self, winner: str, reason: str) -> None:
        session = self.session
        session.ended_at = self.clock()

        percentages = {team.side: round(team.hp_percentage(), 2) for team in session.teams()}
        leader = None
        if reason == "time_limit" and percentages["player"] != percentages["opponent"]:
            leader = max(percentages, key=percentages.get)

        session.outcome = BattleOutcome(
            winner=winner,
            reason=reason,
            rounds_played=session.current_round,
            hp_percentages=percentages,
            hp_leader=leader,
        )

        reports = {}
        for team in session.teams():
            won = winner == team.side
            report = analyze_chemistry_evolution(
                team.chemistry, won,
                [f.psych.stress for f in team.fighters],
                [session.stats_for(f.id).strategy_deviations for f in team.fighters],
            )
            report["relationship_changes"] = evolve_relationships(team.relationships, team.member_ids, won)
            team.chemistry = report["new_chemistry"]
            reports[team.side] = report
        session.chemistry_report = reports

        session.performances = {
            f.id: self._build_performance(f) for f in session.all_fighters()
        }

        if winner == "player":
            message = f"Victory! {session.player.name} has triumphed through teamwork and strategy!"
        elif winner == "opponent":
            message = f"Defeat! {session.opponent.name} has proven superior this day."
        else:
            message = "The battle ends in a dramatic draw! Both teams showed incredible heart!"
        session.announcements.append(message)
        session.phase = BattlePhase.BATTLE_END
        logger.info("Battle %s ended: winner=%s reason=%s rounds=%d",
                    session.battle_id, winner, reason, session.current_round)

    def _build_performance(self, fighter: Fighter) -> BattlePerformance:
        session = self.session
        team = session.team_of(fighter.id)
        enemy_team = session.enemy_team_of(fighter.id)
        stats = session.stats_for(fighter.id)
        duration = 0.0
        if session.started_at is not None and session.ended_at is not None:
            duration = max(0.0, session.ended_at - session.started_at)
        return BattlePerformance(
            character_id=fighter.id,
            battle_id=session.battle_id,
            is_victory=session.outcome.winner == team.side,
            character_level=fighter.level,
            opponent_level=enemy_team.average_level,
            damage_dealt=stats.damage_dealt,
            damage_taken=stats.damage_taken,
            critical_hits=stats.critical_hits,
            abilities_used=stats.abilities_used,
            skills_used=len(stats.distinct_abilities),
            rounds_survived=stats.rounds_survived,
            total_rounds=session.current_round,
            perfect_blocks=stats.perfect_blocks,
            combo_moves=stats.combo_moves,
            successful_dodges=stats.successful_dodges,
            strategic_decisions=stats.strategic_decisions,
            social_interactions=stats.social_interactions,
            spiritual_moments=stats.spiritual_moments,
            strategy_deviations=stats.strategy_deviations,
            battle_duration=round(duration, 3),
            outnumbered=len(team.fighters) < len(enemy_team.fighters),
            team_battle=len(team.fighters) > 1,
        )
