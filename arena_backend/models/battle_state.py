"""
Battle session state.

BattleSession is the single owner of everything one battle mutates:
phase, round counter, both teams (fighters, morale, chemistry), the
append-only round log, strategy selections and per-fighter stats.
The orchestrator reads and writes battle state only through it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from arena_backend.game_logic.morale import MoraleLedger
from arena_backend.models.character import Fighter
from arena_backend.models.relationship import RelationshipGraph
from arena_backend.progression.performance import BattlePerformance
from arena_backend.utils.identity import canonical_id


class BattlePhase(Enum):
    PRE_BATTLE = "pre_battle"
    HUDDLE = "huddle"
    STRATEGY_SELECTION = "strategy_selection"
    ROUND_COMBAT = "round_combat"
    ROUND_END = "round_end"
    BATTLE_END = "battle_end"


class ActionKind(Enum):
    SCRIPTED = "scripted"
    ROGUE = "rogue"


STRATEGY_CATEGORIES = ("attack", "defense", "special")


@dataclass
class StrategySelection:
    """Coach-selected ability per category for one fighter and one round."""
    attack: Optional[str] = None
    defense: Optional[str] = None
    special: Optional[str] = None
    auto_filled: List[str] = field(default_factory=list)

    def missing_categories(self) -> List[str]:
        return [c for c in STRATEGY_CATEGORIES if not getattr(self, c)]

    @property
    def is_complete(self) -> bool:
        return not self.missing_categories()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attack": self.attack,
            "defense": self.defense,
            "special": self.special,
            "auto_filled": list(self.auto_filled),
        }


@dataclass(frozen=True)
class CombatRoundRecord:
    """One resolved action. Immutable once appended to the battle log."""
    round: int
    attacker_id: str
    defender_id: str
    action_kind: ActionKind
    damage: int
    morale_impact: int
    narrative: str
    new_attacker_hp: int
    new_defender_hp: int
    ability_name: Optional[str] = None
    rogue_action: Optional[str] = None
    adherence_score: Optional[float] = None
    adherence_tier: Optional[str] = None
    obedience_probability: Optional[float] = None
    critical: bool = False
    healing: int = 0
    self_damage: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "round": int(self.round),
            "attacker_id": self.attacker_id,
            "defender_id": self.defender_id,
            "action_kind": self.action_kind.value,
            "damage": int(self.damage),
            "morale_impact": int(self.morale_impact),
            "narrative": self.narrative,
            "new_attacker_hp": int(self.new_attacker_hp),
            "new_defender_hp": int(self.new_defender_hp),
            "ability_name": self.ability_name,
            "rogue_action": self.rogue_action,
            "adherence_score": self.adherence_score,
            "adherence_tier": self.adherence_tier,
            "obedience_probability": self.obedience_probability,
            "critical": self.critical,
            "healing": int(self.healing),
            "self_damage": int(self.self_damage),
        }


@dataclass
class FighterStats:
    """Running per-fighter counters, folded into a BattlePerformance at battle end."""
    damage_dealt: int = 0
    damage_taken: int = 0
    critical_hits: int = 0
    abilities_used: int = 0
    distinct_abilities: Set[str] = field(default_factory=set)
    rounds_survived: int = 0
    perfect_blocks: int = 0
    combo_moves: int = 0
    successful_dodges: int = 0
    strategic_decisions: int = 0
    social_interactions: int = 0
    spiritual_moments: int = 0
    strategy_deviations: int = 0
    last_ability: Optional[str] = None
    last_ability_round: int = 0

    def record_ability(self, ability_name: str, round_number: int) -> None:
        self.abilities_used += 1
        self.distinct_abilities.add(ability_name)
        chained = self.last_ability_round == round_number - 1 and self.last_ability not in (None, ability_name)
        if chained:
            self.combo_moves += 1
        self.last_ability = ability_name
        self.last_ability_round = round_number

    def to_dict(self) -> Dict[str, Any]:
        return {
            "damage_dealt": self.damage_dealt,
            "damage_taken": self.damage_taken,
            "critical_hits": self.critical_hits,
            "abilities_used": self.abilities_used,
            "distinct_abilities": sorted(self.distinct_abilities),
            "rounds_survived": self.rounds_survived,
            "perfect_blocks": self.perfect_blocks,
            "combo_moves": self.combo_moves,
            "successful_dodges": self.successful_dodges,
            "strategic_decisions": self.strategic_decisions,
            "social_interactions": self.social_interactions,
            "spiritual_moments": self.spiritual_moments,
            "strategy_deviations": self.strategy_deviations,
            "last_ability": self.last_ability,
            "last_ability_round": self.last_ability_round,
        }


@dataclass
class Team:
    """One side of a battle."""
    side: str  # "player" | "opponent"
    name: str
    fighters: List[Fighter]
    coach_name: str = "Coach"
    morale: MoraleLedger = field(default_factory=MoraleLedger)
    chemistry: float = 50.0
    relationships: RelationshipGraph = field(default_factory=RelationshipGraph)

    def get_fighter(self, fighter_id: str) -> Optional[Fighter]:
        key = canonical_id(fighter_id)
        for fighter in self.fighters:
            if fighter.id == key:
                return fighter
        return None

    def living_fighters(self) -> List[Fighter]:
        return [f for f in self.fighters if f.is_alive]

    @property
    def has_fallen_fighter(self) -> bool:
        return any(not f.is_alive for f in self.fighters)

    @property
    def member_ids(self) -> List[str]:
        return [f.id for f in self.fighters]

    @property
    def average_level(self) -> int:
        if not self.fighters:
            return 1
        return round(sum(f.level for f in self.fighters) / len(self.fighters))

    def hp_percentage(self) -> float:
        total_max = sum(f.max_hp for f in self.fighters) or 1
        return sum(f.current_hp for f in self.fighters) / total_max * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "side": self.side,
            "name": self.name,
            "coach_name": self.coach_name,
            "fighters": [f.to_dict() for f in self.fighters],
            "morale": self.morale.to_dict(),
            "chemistry": self.chemistry,
            "relationships": self.relationships.to_dict(),
        }


@dataclass
class BattleOutcome:
    """
    How the battle ended.

    winner is "player", "opponent" or "draw"; reason is "total_victory",
    "mutual_destruction" or "time_limit". hp_leader is informational on
    time-limit draws and never changes the winner.
    """
    winner: str
    reason: str
    rounds_played: int
    hp_percentages: Dict[str, float] = field(default_factory=dict)
    hp_leader: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "winner": self.winner,
            "reason": self.reason,
            "rounds_played": int(self.rounds_played),
            "hp_percentages": dict(self.hp_percentages),
            "hp_leader": self.hp_leader,
        }


@dataclass
class BattleSession:
    """
    Everything one battle owns. Scoped by battle_id; never shared.

    round_log and adherence_events only ever grow during a battle.
    generation increments on reset so stale timers can tell they are stale.
    """
    battle_id: str
    player: Team
    opponent: Team
    round_cap: int = 9
    phase: BattlePhase = BattlePhase.PRE_BATTLE
    current_round: int = 0
    round_log: List[CombatRoundRecord] = field(default_factory=list)
    selections: Dict[str, StrategySelection] = field(default_factory=dict)
    last_round_rogue: Dict[str, bool] = field(default_factory=dict)
    stats: Dict[str, FighterStats] = field(default_factory=dict)
    adherence_events: List[Any] = field(default_factory=list)
    announcements: List[str] = field(default_factory=list)
    outcome: Optional[BattleOutcome] = None
    chemistry_report: Optional[Dict[str, Any]] = None
    performances: Dict[str, BattlePerformance] = field(default_factory=dict)
    degraded: bool = False
    generation: int = 0
    started_at: Optional[float] = None
    ended_at: Optional[float] = None

    def teams(self) -> Tuple[Team, Team]:
        return (self.player, self.opponent)

    def all_fighters(self) -> List[Fighter]:
        return list(self.player.fighters) + list(self.opponent.fighters)

    def get_fighter(self, fighter_id: str) -> Optional[Fighter]:
        return self.player.get_fighter(fighter_id) or self.opponent.get_fighter(fighter_id)

    def team_of(self, fighter_id: str) -> Team:
        return self.player if self.player.get_fighter(fighter_id) else self.opponent

    def enemy_team_of(self, fighter_id: str) -> Team:
        return self.opponent if self.player.get_fighter(fighter_id) else self.player

    def stats_for(self, fighter_id: str) -> FighterStats:
        return self.stats.setdefault(canonical_id(fighter_id), FighterStats())

    def append_record(self, record: CombatRoundRecord) -> None:
        self.round_log.append(record)

    def records_for_round(self, round_number: int) -> List[CombatRoundRecord]:
        return [r for r in self.round_log if r.round == round_number]

    def snapshot(self) -> Dict[str, Any]:
        """Read-only view for the UI (BattleState)."""
        return {
            "battle_id": self.battle_id,
            "phase": self.phase.value,
            "round": self.current_round,
            "round_cap": self.round_cap,
            "fighters": {
                f.id: {
                    "name": f.name,
                    "side": self.team_of(f.id).side,
                    "hp": f.current_hp,
                    "max_hp": f.max_hp,
                    "status_effects": sorted(f.status_effects),
                }
                for f in self.all_fighters()
            },
            "morale": {t.side: t.morale.current_morale for t in self.teams()},
            "chemistry": {t.side: t.chemistry for t in self.teams()},
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "degraded": self.degraded,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "battle_id": self.battle_id,
            "player": self.player.to_dict(),
            "opponent": self.opponent.to_dict(),
            "round_cap": self.round_cap,
            "phase": self.phase.value,
            "current_round": self.current_round,
            "round_log": [r.to_dict() for r in self.round_log],
            "selections": {k: v.to_dict() for k, v in self.selections.items()},
            "last_round_rogue": dict(self.last_round_rogue),
            "stats": {k: v.to_dict() for k, v in self.stats.items()},
            "adherence_events": [e.to_dict() for e in self.adherence_events],
            "announcements": list(self.announcements),
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "chemistry_report": self.chemistry_report,
            "performances": {k: v.to_dict() for k, v in self.performances.items()},
            "degraded": self.degraded,
            "generation": self.generation,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
        }
