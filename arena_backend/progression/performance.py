"""
Battle performance snapshot.

Built once per character when a battle ends and read by the reward and
skill progression calculators. Frozen: nothing downstream may alter it.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class BattlePerformance:
    """
    Aggregated statistics of one character's battle.

    Attributes:
        character_id / battle_id: Who and where
        is_victory: Character's team won
        character_level / opponent_level: For difficulty scaling
        damage_dealt / damage_taken: Totals over the battle
        critical_hits: Critical scripted hits landed
        abilities_used: Ability activations (every scripted action counts)
        skills_used: Distinct abilities used
        rounds_survived: Rounds the character finished alive
        total_rounds: Rounds the battle lasted
        perfect_blocks: Incoming hits fully absorbed by defense
        combo_moves: Scripted actions chaining a different ability from the previous round
        successful_dodges: Incoming actions that dealt no damage
        strategic_decisions: Rounds the character followed the gameplan
        social_interactions: Coaching exchanges and teamplay actions
        spiritual_moments: Focus actions and heals
        strategy_deviations: Rogue actions taken
        battle_duration: Seconds from first round to battle end
        outnumbered: Own team was smaller than the opponent's
        team_battle: Own team had more than one fighter
    """
    character_id: str
    battle_id: str = ""
    is_victory: bool = False
    character_level: int = 1
    opponent_level: int = 1
    damage_dealt: int = 0
    damage_taken: int = 0
    critical_hits: int = 0
    abilities_used: int = 0
    skills_used: int = 0
    rounds_survived: int = 0
    total_rounds: int = 0
    perfect_blocks: int = 0
    combo_moves: int = 0
    successful_dodges: int = 0
    strategic_decisions: int = 0
    social_interactions: int = 0
    spiritual_moments: int = 0
    strategy_deviations: int = 0
    battle_duration: float = 0.0
    outnumbered: bool = False
    team_battle: bool = False

    @property
    def level_difference(self) -> int:
        """Positive when the opponent out-levels the character."""
        return int(self.opponent_level) - int(self.character_level)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BattlePerformance":
        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        return cls(**known)
