"""
Domain errors for the arena backend.

Recoverable in-battle conditions never raise (they fall back and log).
These are for caller mistakes the API layer can report back.
"""


class ArenaError(Exception):
    """Base class for all arena errors."""


class BattleNotFoundError(ArenaError):
    """No battle exists for the given battle id."""

    def __init__(self, battle_id: str):
        super().__init__(f"Battle '{battle_id}' not found")
        self.battle_id = battle_id


class InvalidTransitionError(ArenaError):
    """Input is not valid in the battle's current phase."""

    def __init__(self, phase: str, action: str):
        super().__init__(f"Cannot {action} during phase '{phase}'")
        self.phase = phase
        self.action = action


class UnknownAbilityError(ArenaError):
    """Strategy selection names an ability the fighter does not have."""

    def __init__(self, fighter_id: str, ability_name: str, suggestions=None):
        message = f"{fighter_id} has no ability named '{ability_name}'"
        if suggestions:
            message += f" (did you mean: {', '.join(suggestions)}?)"
        super().__init__(message)
        self.fighter_id = fighter_id
        self.ability_name = ability_name
        self.suggestions = list(suggestions or [])
