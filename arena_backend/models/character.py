"""
Fighter model for the arena.

A Fighter is one character as it exists inside a battle: resolved combat
stats (from the equipment subsystem, treated as opaque numbers), its
abilities, personality traits and persistent PsychProfile.
HP is clamped to [0, max_hp] on every mutation.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from arena_backend.models.personality import Trait, parse_traits
from arena_backend.models.psych_profile import PsychProfile
from arena_backend.utils.identity import canonical_id

logger = logging.getLogger("arena.models")


class AbilityType(Enum):
    ATTACK = "attack"
    DEFENSE = "defense"
    SPECIAL = "special"
    SUPPORT = "support"


class Archetype(Enum):
    WARRIOR = "warrior"
    MAGE = "mage"
    TRICKSTER = "trickster"
    BEAST = "beast"
    LEADER = "leader"
    DETECTIVE = "detective"
    MONSTER = "monster"
    ALIEN = "alien"
    MERCENARY = "mercenary"
    COWBOY = "cowboy"
    BIKER = "biker"


def get_archetype(value: str) -> Archetype:
    """Convert string to Archetype, defaulting to WARRIOR."""
    try:
        return Archetype(str(value).lower())
    except ValueError:
        return Archetype.WARRIOR


@dataclass
class Ability:
    """A named ability. power adds to damage, guard or healing depending on type."""
    name: str
    ability_type: AbilityType = AbilityType.ATTACK
    power: int = 0
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "ability_type": self.ability_type.value,
            "power": int(self.power),
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Ability":
        raw_type = data.get("ability_type", data.get("type", "attack"))
        try:
            ability_type = AbilityType(str(raw_type).lower())
        except ValueError:
            ability_type = AbilityType.ATTACK
        return cls(
            name=str(data.get("name", "Unnamed")),
            ability_type=ability_type,
            power=int(data.get("power", 0) or 0),
            description=str(data.get("description", "")),
        )


# Substituted when a category has nothing to pick from
FALLBACK_ABILITIES = {
    AbilityType.ATTACK: Ability("Basic Attack", AbilityType.ATTACK, 0, "A plain strike"),
    AbilityType.DEFENSE: Ability("Basic Defense", AbilityType.DEFENSE, 0, "Brace for impact"),
    AbilityType.SPECIAL: Ability("Focus", AbilityType.SPECIAL, 0, "Steady breathing, no effect"),
}

# The no-op action for a fighter with no abilities at all
FOCUS_ACTION = FALLBACK_ABILITIES[AbilityType.SPECIAL]


@dataclass
class Fighter:
    """
    One combatant in a battle.

    Attributes:
        id: Canonical character id (see utils.identity.canonical_id)
        name: Display name
        archetype: Character archetype
        level: Character level (drives reward difficulty)
        max_hp / current_hp: Health, current_hp always in [0, max_hp]
        attack: Resolved attack ("strength") stat
        defense: Resolved defense stat
        speed: Resolved speed stat (initiative)
        crit_chance: 0.0-1.0 chance a scripted hit is critical
        abilities: Available abilities
        traits: Personality traits
        psych: Persistent psychological profile
        status_effects: Short-lived tags applied by judge rulings
    """
    id: str
    name: str
    archetype: Archetype = Archetype.WARRIOR
    level: int = 1
    max_hp: int = 100
    current_hp: Optional[int] = None
    attack: int = 20
    defense: int = 10
    speed: int = 50
    crit_chance: float = 0.05
    abilities: List[Ability] = field(default_factory=list)
    traits: List[Trait] = field(default_factory=list)
    psych: PsychProfile = field(default_factory=PsychProfile)
    status_effects: Set[str] = field(default_factory=set)

    def __post_init__(self):
        self.id = canonical_id(self.id or self.name)
        self.max_hp = max(1, int(self.max_hp))
        if self.current_hp is None:
            self.current_hp = self.max_hp
        self.current_hp = max(0, min(self.max_hp, int(self.current_hp)))

    @property
    def is_alive(self) -> bool:
        return self.current_hp > 0

    @property
    def is_injured(self) -> bool:
        """Injured = below half health."""
        return self.current_hp < self.max_hp * 0.5

    @property
    def hp_percentage(self) -> float:
        return self.current_hp / self.max_hp * 100

    def take_damage(self, amount: int) -> int:
        """Apply damage, return actual HP lost (never drops below 0)."""
        old = self.current_hp
        self.current_hp = max(0, min(self.max_hp, old - max(0, int(amount))))
        return old - self.current_hp

    def heal(self, amount: int) -> int:
        """Restore HP, return actual HP gained (never exceeds max_hp)."""
        old = self.current_hp
        self.current_hp = max(0, min(self.max_hp, old + max(0, int(amount))))
        return self.current_hp - old

    def abilities_of_type(self, ability_type: AbilityType) -> List[Ability]:
        return [a for a in self.abilities if a.ability_type == ability_type]

    def get_ability(self, name: str) -> Optional[Ability]:
        for ability in self.abilities:
            if ability.name.lower() == str(name).lower():
                return ability
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "archetype": self.archetype.value,
            "level": int(self.level),
            "max_hp": int(self.max_hp),
            "current_hp": int(self.current_hp),
            "attack": int(self.attack),
            "defense": int(self.defense),
            "speed": int(self.speed),
            "crit_chance": float(self.crit_chance),
            "abilities": [a.to_dict() for a in self.abilities],
            "traits": [t.value for t in self.traits],
            "psych": self.psych.to_dict(),
            "status_effects": sorted(self.status_effects),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Fighter":
        """Build a Fighter from API/roster data. Bad psych fields fall back to defaults."""
        return cls(
            id=data.get("id") or data.get("name", ""),
            name=str(data.get("name", data.get("id", "Unknown"))),
            archetype=get_archetype(data.get("archetype", "warrior")),
            level=int(data.get("level", 1) or 1),
            max_hp=int(data.get("max_hp", data.get("maxHp", 100)) or 100),
            current_hp=data.get("current_hp", data.get("currentHp")),
            attack=int(data.get("attack", 20) or 0),
            defense=int(data.get("defense", 10) or 0),
            speed=int(data.get("speed", 50) or 0),
            crit_chance=float(data.get("crit_chance", 0.05) or 0.0),
            abilities=[Ability.from_dict(a) for a in data.get("abilities", [])],
            traits=parse_traits(data.get("traits", [])),
            psych=PsychProfile.from_dict(data.get("psych")),
            status_effects=set(data.get("status_effects", [])),
        )

    def __repr__(self) -> str:
        return f"Fighter('{self.id}', hp={self.current_hp}/{self.max_hp})"
