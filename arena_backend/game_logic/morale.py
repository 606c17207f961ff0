"""
Team morale ledger.

Morale is a 0-100 team scalar updated by clamped addition of each round's
morale impact. The history is append-only: every event records the
requested delta, the delta actually applied after clamping, and its cause.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

# Morale every team starts a battle with
STARTING_MORALE = 75

# (threshold, damage modifier), checked top-down
MORALE_MODIFIERS = (
    (80, 1.2),
    (60, 1.1),
    (40, 0.9),
    (20, 0.8),
)
LOWEST_MORALE_MODIFIER = 0.7


def clamp_morale(value: float) -> float:
    return max(0, min(100, value))


def get_morale_modifier(morale: float) -> float:
    """
    Damage multiplier from team morale.

    - 80+: 1.2
    - 60-79: 1.1
    - 40-59: 0.9
    - 20-39: 0.8
    - <20: 0.7
    """
    for threshold, modifier in MORALE_MODIFIERS:
        if morale >= threshold:
            return modifier
    return LOWEST_MORALE_MODIFIER


def get_battle_trend(team_morale: float, opponent_morale: float) -> str:
    """'winning', 'losing' or 'even' from relative morale."""
    if team_morale > opponent_morale:
        return "winning"
    if team_morale < opponent_morale:
        return "losing"
    return "even"


@dataclass(frozen=True)
class MoraleEvent:
    """One signed change to team morale."""
    round: int
    cause: str
    requested_change: float
    applied_change: float
    morale_after: float
    affected_characters: Tuple[str, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "round": int(self.round),
            "cause": self.cause,
            "requested_change": self.requested_change,
            "applied_change": self.applied_change,
            "morale_after": self.morale_after,
            "affected_characters": list(self.affected_characters),
        }


class MoraleLedger:
    """Current morale plus its append-only history."""

    def __init__(self, starting_morale: float = STARTING_MORALE):
        self._morale = clamp_morale(starting_morale)
        self._history: List[MoraleEvent] = []

    @property
    def current_morale(self) -> float:
        return self._morale

    @property
    def history(self) -> Tuple[MoraleEvent, ...]:
        return tuple(self._history)

    def apply(self, delta: float, cause: str, round_number: int = 0,
              affected_characters: Optional[List[str]] = None) -> float:
        """
        Apply a morale change, return actual change.

        Zero-delta events are not recorded.
        """
        if not delta:
            return 0
        old = self._morale
        self._morale = clamp_morale(old + delta)
        applied = self._morale - old
        self._history.append(MoraleEvent(
            round=round_number,
            cause=cause,
            requested_change=delta,
            applied_change=applied,
            morale_after=self._morale,
            affected_characters=tuple(affected_characters or ()),
        ))
        return applied

    def reset(self, starting_morale: float = STARTING_MORALE) -> None:
        """Start a new battle. The previous battle's history is dropped with it."""
        self._morale = clamp_morale(starting_morale)
        self._history = []

    def to_dict(self) -> Dict:
        return {
            "current_morale": self._morale,
            "history": [e.to_dict() for e in self._history],
        }

    def __repr__(self) -> str:
        return f"MoraleLedger({self._morale}, events={len(self._history)})"
