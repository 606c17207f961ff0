"""
Team chemistry.

Chemistry is a 0-100 team score derived from the relationship graph:

    chemistry = base + 5 * strong_alliances + 3 * mentoring_bonds - 5 * active_conflicts

clamped to [0, 100]. Mirrored edges (A->B and B->A) count once.
The base is 50, or comes from the roster's psych averages when profiles
are given (see roster_chemistry_base).
It is recomputed before each battle and nudged afterwards by the result.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from arena_backend.models.psych_profile import PsychProfile
from arena_backend.models.relationship import RelationshipGraph

logger = logging.getLogger("arena.chemistry")

CHEMISTRY_BASE = 50
STRONG_ALLIANCE_BONUS = 5
MENTORING_BONUS = 3
ACTIVE_CONFLICT_PENALTY = 5

# Each point of average ego above 50 costs this much base chemistry
EGO_CHEMISTRY_FACTOR = 0.3

# Post-battle chemistry deltas
CHEMISTRY_WIN_DELTA = 10
CHEMISTRY_LOSS_DELTA = -5

# Post-battle relationship deltas between teammates
RELATIONSHIP_WIN_DELTA = 5
RELATIONSHIP_LOSS_DELTA = -3

# (threshold, band, description), checked top-down
CHEMISTRY_BANDS = (
    (90, "exceptional", "Exceptional team unity and synergy"),
    (80, "strong", "Strong team cohesion with good communication"),
    (70, "good", "Good teamwork with minor friction"),
    (60, "adequate", "Adequate cooperation but some tensions"),
    (50, "fragile", "Fragile unity with notable conflicts"),
    (40, "poor", "Poor teamwork with active hostilities"),
    (30, "near_dysfunction", "Team on the verge of dysfunction"),
    (0, "toxic", "Toxic team environment - critical intervention needed"),
)


def clamp_chemistry(value: float) -> float:
    return max(0, min(100, value))


def roster_chemistry_base(profiles: Sequence[PsychProfile]) -> float:
    """
    Base chemistry from the roster's psych averages.

    Trust, communication and mental health pull the base up; average ego
    above 50 pulls it down. An empty roster falls back to CHEMISTRY_BASE.
    """
    if not profiles:
        return CHEMISTRY_BASE
    count = len(profiles)
    avg_trust = sum(p.team_trust for p in profiles) / count
    avg_communication = sum(p.communication for p in profiles) / count
    avg_mental_health = sum(p.mental_health for p in profiles) / count
    avg_ego = sum(p.ego for p in profiles) / count
    base = (avg_trust + avg_communication + avg_mental_health) / 3
    return clamp_chemistry(base - (avg_ego - 50) * EGO_CHEMISTRY_FACTOR)


def compute_team_chemistry(graph: RelationshipGraph,
                           member_ids: Optional[Iterable[str]] = None,
                           profiles: Optional[Sequence[PsychProfile]] = None) -> float:
    """Chemistry from relationship counts among the given members."""
    counts = graph.summarize(member_ids)
    base = CHEMISTRY_BASE if profiles is None else roster_chemistry_base(profiles)
    chemistry = (base
                 + STRONG_ALLIANCE_BONUS * counts["strong_alliances"]
                 + MENTORING_BONUS * counts["mentoring_bonds"]
                 - ACTIVE_CONFLICT_PENALTY * counts["active_conflicts"])
    return clamp_chemistry(chemistry)


def get_chemistry_band(chemistry: float) -> Tuple[str, str]:
    """
    Get chemistry band and description.

    Returns:
        Tuple of (band, description), e.g. ("good", "Good teamwork with minor friction")
    """
    for threshold, band, description in CHEMISTRY_BANDS:
        if chemistry >= threshold:
            return (band, description)
    return CHEMISTRY_BANDS[-1][1:]


def apply_post_battle_chemistry(chemistry: float, won: bool) -> float:
    """+10 on a win, -5 on anything else (loss or draw), clamped."""
    delta = CHEMISTRY_WIN_DELTA if won else CHEMISTRY_LOSS_DELTA
    return clamp_chemistry(chemistry + delta)


def evolve_relationships(graph: RelationshipGraph, member_ids: Iterable[str],
                         won: bool) -> List[Dict]:
    """
    Shift every edge between teammates after a battle.

    Returns:
        List of {source_id, target_id, change} for edges that actually moved
    """
    members = list(member_ids)
    delta = RELATIONSHIP_WIN_DELTA if won else RELATIONSHIP_LOSS_DELTA
    changes = []
    for source in members:
        for target in members:
            if source == target:
                continue
            change = graph.modify_strength(source, target, delta)
            if change:
                changes.append({"source_id": source, "target_id": target, "change": change})
    return changes


def analyze_chemistry_evolution(old_chemistry: float, won: bool,
                                stress_levels: List[float],
                                deviation_counts: List[int]) -> Dict:
    """
    Summarize how the battle changed team chemistry.

    Only the result moves the number (+10 win, -5 otherwise). The factors
    describe what else showed up in the battle for the post-battle report.
    """
    new_chemistry = apply_post_battle_chemistry(old_chemistry, won)
    factors = ["Victory brought the team closer" if won else "The result strained the team"]

    calm = sum(1 for stress in stress_levels if stress < 50)
    if stress_levels and calm > len(stress_levels) / 2:
        factors.append("Team managing stress well")
    if any(count > 2 for count in deviation_counts):
        factors.append("Repeated deviations from the gameplan")

    logger.debug("Chemistry %.1f -> %.1f (%s)", old_chemistry, new_chemistry, ", ".join(factors))
    return {
        "old_chemistry": old_chemistry,
        "new_chemistry": new_chemistry,
        "evolution_factors": factors,
    }
