"""
Post-battle rewards.

RewardCalculator turns one BattlePerformance snapshot into XP, training
points, currency, bond, stat bonuses and at most one achievement.
Every rule is a threshold on the snapshot, so identical input always
produces identical output.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from arena_backend.progression.performance import BattlePerformance

# Base payouts (win / otherwise)
BASE_XP = (100, 25)
BASE_TRAINING_POINTS = (2, 1)
BASE_CURRENCY = (50, 10)
BASE_BOND = (3, 1)

LEVEL_DIFFERENCE_STEP = 0.1
MIN_DIFFICULTY_MULTIPLIER = 0.5

ACHIEVEMENTS = {
    "Flawless Victory": {
        "description": "Win a battle without taking damage",
        "rarity": "legendary",
    },
    "Critical Master": {
        "description": "Land 5+ critical hits in one battle",
        "rarity": "epic",
    },
    "Combo Artist": {
        "description": "Execute 3+ combo moves in one battle",
        "rarity": "rare",
    },
    "Endurance Champion": {
        "description": "Win a battle lasting 8+ rounds",
        "rarity": "rare",
    },
    "Skill Virtuoso": {
        "description": "Use 5+ different skills in one battle",
        "rarity": "epic",
    },
}


@dataclass(frozen=True)
class PerformanceMetrics:
    """How the battle went, as judged from the snapshot."""
    victory: bool
    perfect_victory: bool
    dominant_victory: bool
    close_victory: bool
    valiant_defeat: bool
    quick_victory: bool
    endurance_victory: bool
    style_points: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "victory": self.victory,
            "perfect_victory": self.perfect_victory,
            "dominant_victory": self.dominant_victory,
            "close_victory": self.close_victory,
            "valiant_defeat": self.valiant_defeat,
            "quick_victory": self.quick_victory,
            "endurance_victory": self.endurance_victory,
            "style_points": self.style_points,
        }


@dataclass(frozen=True)
class BattleRewards:
    """Rewards for one character. Immutable once produced."""
    character_id: str
    xp_gained: int
    training_points: int
    currency: int
    bond_increase: int
    stat_bonuses: Dict[str, int] = field(default_factory=dict)
    achievement_unlocked: Optional[str] = None
    performance: Optional[PerformanceMetrics] = None

    def to_dict(self) -> Dict[str, Any]:
        achievement = None
        if self.achievement_unlocked:
            achievement = {"name": self.achievement_unlocked, **ACHIEVEMENTS[self.achievement_unlocked]}
        return {
            "character_id": self.character_id,
            "xp_gained": self.xp_gained,
            "training_points": self.training_points,
            "currency": self.currency,
            "bond_increase": self.bond_increase,
            "stat_bonuses": dict(self.stat_bonuses),
            "achievement_unlocked": achievement,
            "performance": self.performance.to_dict() if self.performance else None,
        }


def get_difficulty_multiplier(level_difference: int) -> float:
    """+10% per level the opponent is above the character, never below 0.5."""
    return max(MIN_DIFFICULTY_MULTIPLIER, 1 + level_difference * LEVEL_DIFFERENCE_STEP)


class RewardCalculator:
    """
    Calculates post-battle rewards.

    Stateless: one instance can be shared by every battle.
    """

    def calculate(self, performance: BattlePerformance,
                  membership_multiplier: float = 1.0) -> BattleRewards:
        """
        Calculate rewards for one character.

        Args:
            performance: Frozen battle snapshot
            membership_multiplier: Account multiplier (1.0 = none)

        Returns:
            BattleRewards
        """
        won = performance.is_victory
        metrics = self.analyze_performance(performance)

        performance_xp = 0
        if won:
            if metrics.perfect_victory:
                performance_xp += 100
            elif metrics.dominant_victory:
                performance_xp += 60
            elif metrics.quick_victory:
                performance_xp += 40
            elif metrics.endurance_victory:
                performance_xp += 30
        else:
            # Learning experience
            if metrics.valiant_defeat:
                performance_xp += 20
            performance_xp += performance.rounds_survived * 5

        performance_xp += metrics.style_points
        performance_xp += performance.skills_used * 10
        performance_xp += performance.critical_hits * 15
        performance_xp += performance.perfect_blocks * 10
        performance_xp += performance.combo_moves * 25

        base_xp = BASE_XP[0] if won else BASE_XP[1]
        difficulty = get_difficulty_multiplier(performance.level_difference)
        xp = math.floor((base_xp + performance_xp) * difficulty * membership_multiplier)

        training_points = BASE_TRAINING_POINTS[0] if won else BASE_TRAINING_POINTS[1]
        if metrics.perfect_victory:
            training_points += 2
        if performance.skills_used >= 3:
            training_points += 1
        training_points = math.floor(training_points * membership_multiplier)

        currency = BASE_CURRENCY[0] if won else BASE_CURRENCY[1]
        currency += math.floor(performance_xp * 0.5)
        currency = math.floor(currency * membership_multiplier)

        bond = BASE_BOND[0] if won else BASE_BOND[1]
        if metrics.perfect_victory:
            bond += 2
        if performance.damage_taken < performance.damage_dealt * 0.3:
            bond += 1

        return BattleRewards(
            character_id=performance.character_id,
            xp_gained=xp,
            training_points=training_points,
            currency=currency,
            bond_increase=bond,
            stat_bonuses=self.calculate_stat_bonuses(performance, metrics),
            achievement_unlocked=self.check_achievements(performance, metrics),
            performance=metrics,
        )

    def analyze_performance(self, performance: BattlePerformance) -> PerformanceMetrics:
        won = performance.is_victory
        damage_ratio = performance.damage_dealt / max(1, performance.damage_taken)
        survival_rate = performance.rounds_survived / max(1, performance.total_rounds)
        return PerformanceMetrics(
            victory=won,
            perfect_victory=won and performance.damage_taken == 0,
            dominant_victory=won and damage_ratio >= 3,
            close_victory=won and 1 <= damage_ratio < 1.5,
            valiant_defeat=not won and (damage_ratio >= 0.8 or survival_rate >= 0.7),
            quick_victory=won and performance.total_rounds <= 3,
            endurance_victory=won and performance.total_rounds >= 8,
            style_points=self.calculate_style_points(performance),
        )

    def calculate_style_points(self, performance: BattlePerformance) -> int:
        points = 0
        if performance.skills_used >= 3:
            points += 25
        elif performance.skills_used >= 2:
            points += 15
        points += performance.critical_hits * 10
        points += performance.perfect_blocks * 8
        points += performance.combo_moves * 20
        if performance.damage_dealt > performance.damage_taken * 2:
            points += 15
        return points

    def calculate_stat_bonuses(self, performance: BattlePerformance,
                               metrics: PerformanceMetrics) -> Dict[str, int]:
        bonuses = {}
        # Damage dealers
        if performance.damage_dealt >= 150 or performance.critical_hits >= 3:
            bonuses["atk"] = 1
        # Tanks
        if performance.perfect_blocks >= 2 or (performance.damage_taken < 50 and performance.rounds_survived >= 5):
            bonuses["def"] = 1
        if metrics.quick_victory or performance.skills_used >= 4:
            bonuses["spd"] = 1
        if metrics.endurance_victory or performance.rounds_survived >= 10:
            bonuses["hp"] = 5
        return bonuses

    def check_achievements(self, performance: BattlePerformance,
                           metrics: PerformanceMetrics) -> Optional[str]:
        """First qualifying achievement, in ACHIEVEMENTS order."""
        if metrics.perfect_victory:
            return "Flawless Victory"
        if performance.critical_hits >= 5:
            return "Critical Master"
        if performance.combo_moves >= 3:
            return "Combo Artist"
        if metrics.endurance_victory:
            return "Endurance Champion"
        if performance.skills_used >= 5:
            return "Skill Virtuoso"
        return None
