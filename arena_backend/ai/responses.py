"""
Fixed dialogue pools.

Used directly in mock mode and as the fallback whenever the live
provider fails, so a round always gets its lines.
"""

from typing import Dict, List, Optional

from arena_backend.game_logic.rogue_judge import RogueActionType
from arena_backend.models.psych_profile import PsychProfile
from arena_backend.utils.rng import BattleRng

COACH_RESPONSES: Dict[RogueActionType, List[str]] = {
    RogueActionType.RECKLESS_ATTACK: [
        "{coach}: {name}! What are you doing?! Stick to the plan!",
        "{coach}: That's not what we practiced! Control yourself!",
        "{coach}: Brilliant damage, but you're going to get yourself killed!",
    ],
    RogueActionType.REFUSE_FIGHT: [
        "{coach}: Get back in there! This is not the time for this!",
        "{coach}: {name}, your team needs you! Fight!",
        "{coach}: What's gotten into you? We talked about this!",
    ],
    RogueActionType.CREATIVE_STRATEGY: [
        "{coach}: That wasn't the plan, but... not bad!",
        "{coach}: Improvisation! I like the creativity!",
        "{coach}: Next time warn me before you try something like that!",
    ],
    RogueActionType.PANIC_FLEE: [
        "{coach}: Come back here! We can work through this!",
        "{coach}: {name}! Remember your training!",
        "{coach}: It's okay to be scared, but don't abandon your team!",
    ],
}

GENERIC_COACH_RESPONSE = "{coach}: What are you thinking?! Get it together!"

DEFENSIVE_REACTIONS = [
    "I know what I'm doing!",
    "Trust me, I've been doing this longer than you!",
    "My way is better!",
    "Don't question my methods!",
]

ERRATIC_REACTIONS = [
    "I... I can't think straight!",
    "Everything is falling apart!",
    "I don't know what came over me!",
    "The pressure... it's too much!",
]

APOLOGETIC_REACTIONS = [
    "Sorry coach, I lost my focus for a moment.",
    "You're right, I should stick to the gameplan.",
    "I'll do better next time.",
    "My emotions got the better of me.",
]

BATTLE_CRIES = [
    "{name} steps forward, ready to fight!",
    "{name}: Let's finish this!",
    "{name}: Stick to the plan, team!",
]

POSITIVE_COACHING_REPLIES = [
    "I understand, coach. I'll do my best.",
    "That makes sense. Thanks for the guidance.",
    "You're right. Let me adjust my approach.",
    "I appreciate the coaching. I'll implement that.",
    "Good point. I was getting too caught up in the moment.",
]

COACHING_FALLBACK_REPLY = "I'm having trouble responding right now. Please try again."


def pick_coach_response(action_type: Optional[RogueActionType], coach: str, name: str,
                        rng: BattleRng) -> str:
    """Coach line for a rogue action; a generic scolding for types without a pool."""
    pool = COACH_RESPONSES.get(action_type) if action_type else None
    template = rng.choice(pool) if pool else GENERIC_COACH_RESPONSE
    return template.format(coach=coach, name=name)


def pick_character_reaction(profile: PsychProfile, rng: BattleRng) -> str:
    """
    Character's reply to being called out.

    Big egos get defensive, fragile minds get erratic, everyone else apologizes.
    """
    if profile.ego > 80:
        return rng.choice(DEFENSIVE_REACTIONS)
    if profile.mental_health < 30:
        return rng.choice(ERRATIC_REACTIONS)
    return rng.choice(APOLOGETIC_REACTIONS)


def pick_battle_cry(name: str, rng: BattleRng) -> str:
    return rng.choice(BATTLE_CRIES).format(name=name)
