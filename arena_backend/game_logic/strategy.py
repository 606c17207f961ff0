"""
Strategy selection.

Each round the coach picks an ability per category (attack, defense,
special) for every fighter. Typed names are resolved with the fuzzy
ability matcher. When the selection timer runs out, missing categories
are filled by sampling the fighter's valid abilities uniformly, so a
round never starts with a blank slot.
"""

import logging
from typing import Dict, List

from arena_backend.errors import UnknownAbilityError
from arena_backend.models.battle_state import STRATEGY_CATEGORIES, StrategySelection
from arena_backend.models.character import FALLBACK_ABILITIES, AbilityType, Fighter
from arena_backend.utils.fuzzy_matcher import AbilityMatcher
from arena_backend.utils.rng import BattleRng

logger = logging.getLogger("arena.engine")

# Which ability types may fill each category
CATEGORY_TYPES = {
    "attack": (AbilityType.ATTACK, AbilityType.SUPPORT),
    "defense": (AbilityType.DEFENSE,),
    "special": (AbilityType.SPECIAL, AbilityType.SUPPORT),
}

CATEGORY_FALLBACKS = {
    "attack": FALLBACK_ABILITIES[AbilityType.ATTACK].name,
    "defense": FALLBACK_ABILITIES[AbilityType.DEFENSE].name,
    "special": FALLBACK_ABILITIES[AbilityType.SPECIAL].name,
}

_matcher = AbilityMatcher()


def valid_options(fighter: Fighter, category: str) -> List[str]:
    """Ability names the fighter can put in a category (the fallback if none)."""
    if category not in CATEGORY_TYPES:
        raise ValueError(f"Unknown strategy category: {category}")
    names = [a.name for a in fighter.abilities if a.ability_type in CATEGORY_TYPES[category]]
    return names or [CATEGORY_FALLBACKS[category]]


def resolve_ability_name(fighter: Fighter, category: str, typed_name: str) -> Dict:
    """
    Resolve a typed ability name for a category.

    Returns:
        Matcher result dict (action/match/score/suggestions)

    Raises:
        UnknownAbilityError: No confident match (suggestions attached)
    """
    options = valid_options(fighter, category)
    result = _matcher.resolve(typed_name, options)
    if result["action"] in ("exact", "auto_correct"):
        if result["action"] == "auto_correct":
            logger.info("Auto-corrected '%s' -> '%s' for %s", typed_name, result["match"], fighter.id)
        return result
    raise UnknownAbilityError(fighter.id, typed_name, result["suggestions"])


def apply_selection(selection: StrategySelection, fighter: Fighter,
                    category: str, typed_name: str) -> str:
    """Resolve and store one category. Returns the accepted ability name."""
    result = resolve_ability_name(fighter, category, typed_name)
    setattr(selection, category, result["match"])
    if category in selection.auto_filled:
        selection.auto_filled.remove(category)
    return result["match"]


def auto_fill(selection: StrategySelection, fighter: Fighter, rng: BattleRng) -> List[str]:
    """
    Fill every missing category by uniform sampling over valid abilities.

    Returns:
        Categories that were filled
    """
    filled = []
    for category in STRATEGY_CATEGORIES:
        if getattr(selection, category):
            continue
        choice = rng.choice(valid_options(fighter, category))
        setattr(selection, category, choice)
        selection.auto_filled.append(category)
        filled.append(category)
    if filled:
        logger.info("Auto-filled %s for %s", ", ".join(filled), fighter.id)
    return filled
