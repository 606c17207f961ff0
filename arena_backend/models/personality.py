"""
Personality traits for arena characters.

Traits change how a character reacts to coaching. A character may carry
several traits; unknown trait names are ignored.
"""

import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger("arena.models")


class Trait(Enum):
    """Personality traits that affect coaching and rogue behavior."""
    LOYAL = "Loyal"
    STUBBORN = "Stubborn"
    ANALYTICAL = "Analytical"
    PRIDEFUL = "Prideful"


# Trait descriptions for UI/narrative
TRAIT_DESCRIPTIONS = {
    Trait.LOYAL: {
        'name': 'Loyal',
        'summary': 'Devoted to the team',
        'description': 'Responds strongly to motivational speeches and rarely abandons teammates.',
    },
    Trait.STUBBORN: {
        'name': 'Stubborn',
        'summary': 'Digs in under pressure',
        'description': 'Pushes back hard against intense coaching.',
    },
    Trait.ANALYTICAL: {
        'name': 'Analytical',
        'summary': 'Thinks in plans',
        'description': 'Takes tactical adjustments on board quickly.',
    },
    Trait.PRIDEFUL: {
        'name': 'Prideful',
        'summary': 'Hates being corrected',
        'description': 'Bristles at criticism but responds to praise.',
    },
}


# Coaching effectiveness modifiers
# Maps trait -> {focus or intensity value: effectiveness delta}
TRAIT_COACHING_MODIFIERS: Dict[Trait, Dict[str, int]] = {
    Trait.LOYAL: {
        'motivational_speech': 20,
    },
    Trait.STUBBORN: {
        'intense': -25,
    },
    Trait.ANALYTICAL: {
        'tactical_adjustment': 15,
    },
}


def get_trait(trait_str: str) -> Optional[Trait]:
    """
    Convert a string to a Trait.

    Matching is case-insensitive ("loyal" and "Loyal" both work).

    Returns:
        Trait or None if unrecognized
    """
    if not trait_str:
        return None
    for trait in Trait:
        if trait.value.lower() == str(trait_str).strip().lower():
            return trait
    return None


def parse_traits(values: Optional[Iterable]) -> List[Trait]:
    """Convert a list of trait names (or Traits) into Traits, dropping unknowns."""
    traits = []
    for value in values or []:
        trait = value if isinstance(value, Trait) else get_trait(value)
        if trait is None:
            logger.debug("Ignoring unknown trait %r", value)
            continue
        if trait not in traits:
            traits.append(trait)
    return traits


def get_coaching_modifier(traits: Iterable[Trait], focus: str, intensity: str) -> int:
    """Sum trait effectiveness modifiers for a coaching focus + intensity."""
    total = 0
    for trait in traits:
        modifiers = TRAIT_COACHING_MODIFIERS.get(trait, {})
        total += modifiers.get(focus, 0)
        total += modifiers.get(intensity, 0)
    return total
