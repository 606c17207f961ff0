"""
Skill Progression Engine

Distributes post-battle experience across the five core skill categories
(combat, survival, mental, social, spiritual), checks level-ups and
reports newly unlocked skill interactions.

Pure: the engine reads a BattlePerformance and the character's current
skills and returns a new SkillProgressionReward. Applying it to the
character's stored skills is the caller's job.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from arena_backend.progression.performance import BattlePerformance

SKILL_CATEGORIES = ("combat", "survival", "mental", "social", "spiritual")

VICTORY_MULTIPLIER = 1.5
DEFEAT_MULTIPLIER = 0.8

LEVEL_BASE_EXPERIENCE = 100
LEVEL_GROWTH = 1.15
MASTERY_INTERVAL = 5

# Interactions unlock when every required skill reaches its minimum level
SKILL_INTERACTIONS = {
    "combat_survival_synergy": {
        "name": "Battle Hardened",
        "description": "Combat experience enhances survival instincts, reducing damage taken",
        "requirements": {"combat": 25, "survival": 20},
        "bonuses": {"damage_reduction": 15, "status_resistance": 20},
        "rarity": "common",
    },
    "mental_social_synergy": {
        "name": "Tactical Leadership",
        "description": "Mental prowess combined with social skills allows commanding allies effectively",
        "requirements": {"mental": 30, "social": 25},
        "bonuses": {"team_attack_bonus": 25, "team_defense_bonus": 15},
        "rarity": "uncommon",
    },
    "spiritual_mental_synergy": {
        "name": "Inner Focus",
        "description": "Spiritual awareness enhances mental clarity, boosting mana regeneration and spell power",
        "requirements": {"spiritual": 20, "mental": 25},
        "bonuses": {"mana_regeneration": 50, "spell_power": 20, "critical_chance": 10},
        "rarity": "uncommon",
    },
    "combat_mental_synergy": {
        "name": "Strategic Warrior",
        "description": "Combining combat skill with mental acuity for precise strikes",
        "requirements": {"combat": 35, "mental": 30},
        "bonuses": {"critical_chance": 25, "accuracy": 20, "critical_damage": 40},
        "rarity": "rare",
    },
    "survival_spiritual_synergy": {
        "name": "Primal Instinct",
        "description": "Survival skills enhanced by spiritual connection to nature",
        "requirements": {"survival": 30, "spiritual": 25},
        "bonuses": {"health_regeneration": 100, "poison_resistance": 80, "environmental_damage_reduction": 50},
        "rarity": "rare",
    },
}


@dataclass(frozen=True)
class SkillState:
    """One core skill as stored on the character."""
    level: int = 1
    experience: int = 0
    max_level: int = 100

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SkillState":
        return cls(
            level=int(data.get("level", 1)),
            experience=int(data.get("experience", 0)),
            max_level=int(data.get("max_level", data.get("maxLevel", 100))),
        )


@dataclass(frozen=True)
class SkillGain:
    skill: str
    experience: int
    reason: str
    multiplier: float
    base_gain: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "skill": self.skill,
            "experience": self.experience,
            "reason": self.reason,
            "multiplier": self.multiplier,
            "base_gain": self.base_gain,
        }


@dataclass(frozen=True)
class SkillProgressionReward:
    """Result of one battle's skill progression. Immutable once produced."""
    character_id: str
    battle_id: str
    skill_gains: Tuple[SkillGain, ...] = ()
    total_experience: int = 0
    skill_level_ups: Tuple[Dict[str, Any], ...] = ()
    new_interactions_unlocked: Tuple[str, ...] = ()
    performance_rating: str = "poor"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "character_id": self.character_id,
            "battle_id": self.battle_id,
            "skill_gains": [g.to_dict() for g in self.skill_gains],
            "total_experience": self.total_experience,
            "skill_level_ups": [dict(u) for u in self.skill_level_ups],
            "new_interactions_unlocked": list(self.new_interactions_unlocked),
            "performance_rating": self.performance_rating,
        }


def get_experience_for_level(level: int) -> int:
    """Experience needed to reach a level (exponential growth)."""
    return math.floor(LEVEL_BASE_EXPERIENCE * LEVEL_GROWTH ** (level - 1))


def get_battle_duration_multiplier(duration: float) -> float:
    if duration < 30:
        return 0.7  # too quick to learn much
    if duration < 60:
        return 1.0
    if duration < 180:
        return 1.2
    if duration < 300:
        return 1.1
    return 0.9


def default_skills() -> Dict[str, SkillState]:
    return {skill: SkillState() for skill in SKILL_CATEGORIES}


class SkillProgressionEngine:
    """Computes SkillProgressionReward from a BattlePerformance."""

    def calculate(self, performance: BattlePerformance,
                  current_skills: Dict[str, SkillState]) -> SkillProgressionReward:
        """
        Calculate skill progression for one character.

        Args:
            performance: Frozen battle snapshot
            current_skills: skill name -> SkillState (missing skills count as level 1)

        Returns:
            SkillProgressionReward
        """
        victory = VICTORY_MULTIPLIER if performance.is_victory else DEFEAT_MULTIPLIER
        difficulty = max(0.5, 1 + performance.level_difference * 0.1)
        duration = get_battle_duration_multiplier(performance.battle_duration)

        calculators = (
            self._combat_gain,
            self._survival_gain,
            self._mental_gain,
            self._social_gain,
            self._spiritual_gain,
        )
        gains = []
        for calculate in calculators:
            skill, base_gain, multiplier, reasons = calculate(performance, victory * difficulty)
            experience = math.floor(math.floor(base_gain * multiplier) * duration)
            if experience <= 0:
                continue
            gains.append(SkillGain(
                skill=skill,
                experience=experience,
                reason=f"{skill.capitalize()} experience: {', '.join(reasons)}",
                multiplier=multiplier * duration,
                base_gain=base_gain,
            ))

        total = sum(g.experience for g in gains)
        level_ups = self.check_level_ups(gains, current_skills)
        return SkillProgressionReward(
            character_id=performance.character_id,
            battle_id=performance.battle_id,
            skill_gains=tuple(gains),
            total_experience=total,
            skill_level_ups=tuple(level_ups),
            new_interactions_unlocked=tuple(self.check_new_interactions(level_ups, current_skills)),
            performance_rating=self.calculate_performance_rating(performance, total),
        )

    # ════════════════════════════════════════════════════════════
    # PER-SKILL GAINS
    # Each returns (skill, base_gain, multiplier, reasons)
    # ════════════════════════════════════════════════════════════

    def _combat_gain(self, p: BattlePerformance, multiplier: float):
        base = 20
        reasons = []
        if p.damage_dealt > 0:
            bonus = min(50, p.damage_dealt // 50)
            base += bonus
            reasons.append(f"+{bonus} for dealing {p.damage_dealt} damage")
        if p.critical_hits > 0:
            bonus = p.critical_hits * 10
            base += bonus
            reasons.append(f"+{bonus} for {p.critical_hits} critical hits")
        if p.abilities_used > 0:
            bonus = p.abilities_used * 8
            base += bonus
            reasons.append(f"+{bonus} for using {p.abilities_used} abilities")
        if p.is_victory and p.damage_taken == 0:
            base += 30
            multiplier += 0.5
            reasons.append("+30 for flawless victory")
        return "combat", base, multiplier, reasons

    def _survival_gain(self, p: BattlePerformance, multiplier: float):
        base = 15
        reasons = []
        if p.damage_taken < p.damage_dealt * 0.5:
            base += 20
            reasons.append("+20 for taking minimal damage")
        if p.successful_dodges > 0:
            bonus = p.successful_dodges * 8
            base += bonus
            reasons.append(f"+{bonus} for {p.successful_dodges} successful dodges")
        if p.perfect_blocks > 0:
            bonus = p.perfect_blocks * 10
            base += bonus
            reasons.append(f"+{bonus} for {p.perfect_blocks} perfect blocks")
        if p.outnumbered:
            base += 25
            multiplier += 0.3
            reasons.append("+25 for surviving while outnumbered")
        if p.battle_duration > 180:
            base += 10
            reasons.append("+10 for enduring long battle")
        return "survival", base, multiplier, reasons

    def _mental_gain(self, p: BattlePerformance, multiplier: float):
        base = 12
        reasons = []
        if p.strategic_decisions > 0:
            bonus = p.strategic_decisions * 15
            base += bonus
            reasons.append(f"+{bonus} for {p.strategic_decisions} strategic decisions")
        if p.is_victory and p.level_difference > 0:
            bonus = p.level_difference * 5
            base += bonus
            reasons.append(f"+{bonus} for defeating stronger opponent")
        if p.is_victory and p.battle_duration < 60:
            base += 18
            reasons.append("+18 for efficient victory")
        return "mental", base, multiplier, reasons

    def _social_gain(self, p: BattlePerformance, multiplier: float):
        base = 8
        reasons = []
        if p.social_interactions > 0:
            bonus = p.social_interactions * 12
            base += bonus
            reasons.append(f"+{bonus} for {p.social_interactions} social interactions")
        if p.team_battle:
            base += 20
            multiplier += 0.2
            reasons.append("+20 for team coordination")
        if p.outnumbered and p.is_victory:
            base += 25
            reasons.append("+25 for leading through adversity")
        if p.is_victory and p.damage_dealt < p.opponent_level * 20:
            base += 15
            reasons.append("+15 for honorable victory")
        return "social", base, multiplier, reasons

    def _spiritual_gain(self, p: BattlePerformance, multiplier: float):
        base = 6
        reasons = []
        if p.spiritual_moments > 0:
            bonus = p.spiritual_moments * 20
            base += bonus
            reasons.append(f"+{bonus} for {p.spiritual_moments} spiritual moments")
        if p.damage_taken > p.opponent_level * 15 and p.is_victory:
            base += 20
            reasons.append("+20 for spiritual resilience")
        if p.battle_duration > 120 and p.strategy_deviations < 3:
            base += 15
            reasons.append("+15 for maintaining composure")
        return "spiritual", base, multiplier, reasons

    # ════════════════════════════════════════════════════════════
    # LEVELS, UNLOCKS, RATING
    # ════════════════════════════════════════════════════════════

    def check_level_ups(self, gains: List[SkillGain],
                        current_skills: Dict[str, SkillState]) -> List[Dict[str, Any]]:
        """At most one level per skill per battle."""
        level_ups = []
        for gain in gains:
            state = current_skills.get(gain.skill, SkillState())
            needed = get_experience_for_level(state.level + 1)
            if state.experience + gain.experience >= needed and state.level < state.max_level:
                level_ups.append({"skill": gain.skill, "new_level": state.level + 1})
        return level_ups

    def check_new_interactions(self, level_ups: List[Dict[str, Any]],
                               current_skills: Dict[str, SkillState]) -> List[str]:
        """
        Mastery unlocks for every new level divisible by 5, then any skill
        interaction whose requirements became met this battle.
        """
        unlocked = []
        for level_up in level_ups:
            if level_up["new_level"] % MASTERY_INTERVAL == 0:
                unlocked.append(f"{level_up['skill']}_mastery_{level_up['new_level']}")

        old_levels = {skill: current_skills.get(skill, SkillState()).level for skill in SKILL_CATEGORIES}
        new_levels = dict(old_levels)
        for level_up in level_ups:
            new_levels[level_up["skill"]] = level_up["new_level"]

        for interaction_id, interaction in SKILL_INTERACTIONS.items():
            requirements = interaction["requirements"]
            met_before = all(old_levels[s] >= lvl for s, lvl in requirements.items())
            met_now = all(new_levels[s] >= lvl for s, lvl in requirements.items())
            if met_now and not met_before:
                unlocked.append(interaction_id)
        return unlocked

    def calculate_performance_rating(self, p: BattlePerformance, total_experience: int) -> str:
        score = 0
        if p.is_victory:
            score += 30
        if p.battle_duration < 60:
            score += 15
        if p.damage_dealt > p.damage_taken * 2:
            score += 20
        score += min(20, p.critical_hits * 3)
        score += min(15, p.successful_dodges * 2)
        score += min(25, p.abilities_used * 4)
        score += min(20, p.strategic_decisions * 5)
        if p.level_difference > 0:
            score += p.level_difference * 10
        if p.outnumbered:
            score += 25
        score += min(30, total_experience / 5)

        if score >= 150:
            return "legendary"
        if score >= 120:
            return "excellent"
        if score >= 90:
            return "good"
        if score >= 60:
            return "average"
        return "poor"
