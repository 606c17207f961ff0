"""
Injectable random source for the battle engine.

Every probabilistic decision (adherence jitter, obedience rolls, rogue
outcomes, initiative, target picks, auto-fill) draws from a BattleRng
so a battle can be replayed exactly under test.

All helpers are built on top of random(), so subclasses only need to
override that one method to pin every draw.
"""

import random
from typing import Iterable, List, Optional, Sequence, TypeVar

T = TypeVar("T")


class BattleRng:
    """Seedable random source. Wraps random.Random."""

    def __init__(self, seed: Optional[int] = None):
        self._random = random.Random(seed)

    def random(self) -> float:
        """Float in [0.0, 1.0)."""
        return self._random.random()

    def uniform(self, low: float, high: float) -> float:
        return low + (high - low) * self.random()

    def chance(self, probability: float) -> bool:
        """Bernoulli trial. True with the given probability."""
        return self.random() < probability

    def randint(self, low: int, high: int) -> int:
        """Integer in [low, high], inclusive."""
        span = high - low + 1
        return low + min(span - 1, int(self.random() * span))

    def choice(self, items: Sequence[T]) -> T:
        if not items:
            raise IndexError("Cannot choose from an empty sequence")
        index = min(len(items) - 1, int(self.random() * len(items)))
        return items[index]


class FixedRng(BattleRng):
    """
    Returns the same value for every draw.

    FixedRng(0.5) makes uniform(-10, 10) return exactly 0.0, which pins
    adherence jitter for regression tests.
    """

    def __init__(self, value: float = 0.5):
        super().__init__(0)
        self.value = float(value)

    def random(self) -> float:
        return self.value

    def __repr__(self) -> str:
        return f"FixedRng({self.value})"


class SequenceRng(BattleRng):
    """Cycles through a scripted list of values."""

    def __init__(self, values: Iterable[float]):
        super().__init__(0)
        self.values: List[float] = [float(v) for v in values]
        if not self.values:
            raise ValueError("SequenceRng needs at least one value")
        self._index = 0

    def random(self) -> float:
        value = self.values[self._index % len(self.values)]
        self._index += 1
        return value


def make_rng(seed: Optional[int] = None) -> BattleRng:
    """Create a fresh BattleRng (seeded when a seed is given)."""
    return BattleRng(seed)
