"""
Relationship graph between characters.

Edges are directed and may be asymmetric (A may see B as a mentor while
B sees A as a rival). Every endpoint is stored under its canonical id,
so "Joan of Arc" and "joan_of_arc" resolve to the same node.

Aggregations (team chemistry, display counts) must not double count a
mirrored pair, so they go through unique_pairs().
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from arena_backend.utils.identity import canonical_id


class RelationshipType(Enum):
    ALLY = "ally"
    RIVAL = "rival"
    ENEMY = "enemy"
    MENTOR = "mentor"
    STUDENT = "student"


# Classification thresholds
STRONG_ALLIANCE_STRENGTH = 60   # ally with strength > 60
ACTIVE_CONFLICT_STRENGTH = 40   # enemy/rival with |strength| > 40


def clamp_strength(value: float) -> int:
    return int(max(-100, min(100, value)))


@dataclass
class RelationshipEdge:
    """Directed relationship from source to target, strength in [-100, 100]."""
    source_id: str
    target_id: str
    relationship_type: RelationshipType = RelationshipType.ALLY
    strength: int = 0
    battle_modifiers: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        self.source_id = canonical_id(self.source_id)
        self.target_id = canonical_id(self.target_id)
        self.strength = clamp_strength(self.strength)

    @property
    def pair_key(self) -> Tuple[str, str]:
        """Unordered key shared by an edge and its mirror."""
        return tuple(sorted((self.source_id, self.target_id)))

    def is_strong_alliance(self) -> bool:
        return (self.relationship_type == RelationshipType.ALLY
                and self.strength > STRONG_ALLIANCE_STRENGTH)

    def is_active_conflict(self) -> bool:
        return (self.relationship_type in (RelationshipType.ENEMY, RelationshipType.RIVAL)
                and abs(self.strength) > ACTIVE_CONFLICT_STRENGTH)

    def is_mentoring(self) -> bool:
        return self.relationship_type in (RelationshipType.MENTOR, RelationshipType.STUDENT)

    def to_dict(self) -> Dict:
        return {
            "source_id": self.source_id,
            "target_id": self.target_id,
            "relationship_type": self.relationship_type.value,
            "strength": int(self.strength),
            "battle_modifiers": dict(self.battle_modifiers),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "RelationshipEdge":
        raw_type = data.get("relationship_type", data.get("relationshipType", "ally"))
        try:
            rel_type = RelationshipType(str(raw_type).lower())
        except ValueError:
            rel_type = RelationshipType.ALLY
        return cls(
            source_id=data.get("source_id", data.get("sourceId", "")),
            target_id=data.get("target_id", data.get("targetId", "")),
            relationship_type=rel_type,
            strength=data.get("strength", 0),
            battle_modifiers=dict(data.get("battle_modifiers", data.get("battleModifiers", {}))),
        )


class RelationshipGraph:
    """Directed relationship edges keyed by (source_id, target_id)."""

    def __init__(self, edges: Optional[Iterable[RelationshipEdge]] = None):
        self._edges: Dict[Tuple[str, str], RelationshipEdge] = {}
        for edge in edges or []:
            self.add_edge(edge)

    def add_edge(self, edge: RelationshipEdge) -> None:
        """Add or replace the edge from edge.source_id to edge.target_id."""
        self._edges[(edge.source_id, edge.target_id)] = edge

    def get_edge(self, source_id: str, target_id: str) -> Optional[RelationshipEdge]:
        return self._edges.get((canonical_id(source_id), canonical_id(target_id)))

    def edges_from(self, source_id: str) -> List[RelationshipEdge]:
        key = canonical_id(source_id)
        return [e for e in self._edges.values() if e.source_id == key]

    def edges(self) -> List[RelationshipEdge]:
        return list(self._edges.values())

    def modify_strength(self, source_id: str, target_id: str, delta: float) -> int:
        """
        Modify an edge's strength, return actual change.

        Unknown edges are left alone (returns 0).
        """
        edge = self.get_edge(source_id, target_id)
        if edge is None:
            return 0
        old = edge.strength
        edge.strength = clamp_strength(old + delta)
        return edge.strength - old

    def unique_pairs(self, member_ids: Optional[Iterable[str]] = None) -> List[RelationshipEdge]:
        """
        One representative edge per unordered pair.

        When both directions exist, the edge with the larger |strength|
        represents the pair (ties go to the lexicographically smaller
        source id). If member_ids is given, only pairs with both ends in
        that set are returned.
        """
        members = None
        if member_ids is not None:
            members = {canonical_id(m) for m in member_ids}

        chosen: Dict[Tuple[str, str], RelationshipEdge] = {}
        for edge in self._edges.values():
            if members is not None and (edge.source_id not in members or edge.target_id not in members):
                continue
            current = chosen.get(edge.pair_key)
            if current is None:
                chosen[edge.pair_key] = edge
                continue
            stronger = abs(edge.strength) > abs(current.strength)
            tie = abs(edge.strength) == abs(current.strength) and edge.source_id < current.source_id
            if stronger or tie:
                chosen[edge.pair_key] = edge
        return [chosen[key] for key in sorted(chosen)]

    def summarize(self, member_ids: Optional[Iterable[str]] = None) -> Dict[str, int]:
        """Counts used by team chemistry and the relationship display."""
        pairs = self.unique_pairs(member_ids)
        return {
            "strong_alliances": sum(1 for e in pairs if e.is_strong_alliance()),
            "active_conflicts": sum(1 for e in pairs if e.is_active_conflict()),
            "mentoring_bonds": sum(1 for e in pairs if e.is_mentoring()),
            "total_relationships": len(pairs),
        }

    def to_dict(self) -> Dict:
        return {"edges": [e.to_dict() for e in self._edges.values()]}

    @classmethod
    def from_dict(cls, data: Dict) -> "RelationshipGraph":
        return cls(RelationshipEdge.from_dict(e) for e in (data or {}).get("edges", []))

    def __len__(self) -> int:
        return len(self._edges)
