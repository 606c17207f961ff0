"""
Psychological profile for a single character.

Every field is a 0-100 score. The clamp is enforced on every write
(constructor, attribute assignment, modify, apply_deltas), so no caller
can ever leave a profile out of range.

Fields:
- mental_health: overall stability (crisis below 25)
- stress: current pressure (high stress erodes adherence)
- team_trust: trust in coach and teammates
- battle_focus: concentration during the fight
- ego: pride; drives showboating and defiance
- training: drilled discipline
- communication: how well the character listens and talks back
- gameplan_adherence: baseline willingness to follow the plan
"""

import logging
from typing import Dict, Optional, Tuple

logger = logging.getLogger("arena.models")

PSYCH_FIELDS = (
    "mental_health",
    "stress",
    "team_trust",
    "battle_focus",
    "ego",
    "training",
    "communication",
    "gameplan_adherence",
)

# Used whenever a field is missing or malformed
PSYCH_DEFAULTS: Dict[str, int] = {
    "mental_health": 80,
    "stress": 20,
    "team_trust": 70,
    "battle_focus": 70,
    "ego": 50,
    "training": 50,
    "communication": 50,
    "gameplan_adherence": 75,
}

# Accept the camelCase keys the frontend sends
_ALIASES = {
    "mentalHealth": "mental_health",
    "teamTrust": "team_trust",
    "battleFocus": "battle_focus",
    "gameplanAdherence": "gameplan_adherence",
    "baseAdherence": "gameplan_adherence",
}

# (threshold, level, performance modifier), checked top-down
MENTAL_HEALTH_LEVELS = (
    (80, "stable", 1.0),
    (50, "stressed", 0.9),
    (25, "troubled", 0.8),
    (0, "crisis", 0.7),
)


def clamp_stat(value: float) -> float:
    """Clamp a psych value to 0-100."""
    return max(0, min(100, value))


class PsychProfile:
    """Per-character psychological attributes, each clamped to 0-100."""

    def __init__(self, **values):
        for name in PSYCH_FIELDS:
            setattr(self, name, values.get(name, PSYCH_DEFAULTS[name]))

    def __setattr__(self, name, value):
        if name in PSYCH_FIELDS:
            value = clamp_stat(value)
        super().__setattr__(name, value)

    def modify(self, field_name: str, delta: float) -> float:
        """
        Modify one field, return actual change.

        Args:
            field_name: One of PSYCH_FIELDS
            delta: Amount to change (+/-)

        Returns:
            Actual change applied (may be less if capped)
        """
        if field_name not in PSYCH_FIELDS:
            raise KeyError(f"Unknown psych field: {field_name}")
        old = getattr(self, field_name)
        setattr(self, field_name, old + delta)
        return getattr(self, field_name) - old

    def apply_deltas(self, deltas: Dict[str, float]) -> Dict[str, float]:
        """Apply several deltas; returns the actual change per field."""
        return {name: self.modify(name, delta) for name, delta in deltas.items()}

    def get_mental_health_level(self) -> Tuple[str, float]:
        """
        Get mental health level and its performance modifier.

        Returns:
            Tuple of (level, modifier), e.g. ("stressed", 0.9)
        """
        for threshold, level, modifier in MENTAL_HEALTH_LEVELS:
            if self.mental_health >= threshold:
                return (level, modifier)
        return ("crisis", 0.7)

    def copy(self) -> "PsychProfile":
        return PsychProfile(**self.to_dict())

    def to_dict(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in PSYCH_FIELDS}

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "PsychProfile":
        """
        Build a profile from loosely-typed input.

        Missing or malformed fields fall back to PSYCH_DEFAULTS (logged,
        never raised), so a bad character record cannot abort a round.
        """
        data = data or {}
        normalized = {}
        for key, value in data.items():
            normalized[_ALIASES.get(key, key)] = value

        values = {}
        for name in PSYCH_FIELDS:
            raw = normalized.get(name)
            if raw is None:
                values[name] = PSYCH_DEFAULTS[name]
                continue
            try:
                number = float(raw)
            except (TypeError, ValueError):
                logger.warning("Malformed psych field %s=%r, using default %s",
                               name, raw, PSYCH_DEFAULTS[name])
                number = PSYCH_DEFAULTS[name]
            if number != number:  # NaN
                logger.warning("NaN psych field %s, using default", name)
                number = PSYCH_DEFAULTS[name]
            values[name] = number
        return cls(**values)

    def __eq__(self, other) -> bool:
        if not isinstance(other, PsychProfile):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        level, _ = self.get_mental_health_level()
        return (f"PsychProfile(mental_health={self.mental_health}, stress={self.stress}, "
                f"team_trust={self.team_trust}, level='{level}')")
