from __future__ import annotations

import random
from collections.abc import Iterable, Sequence
from typing import TypeVar

T = TypeVar("T")


class GameRandom:
    """Single injectable randomness source for the whole simulation.

    Every probabilistic branch (event rolls, rival success rolls, scenario
    sampling) draws from one of these so a seed reproduces a run exactly.
    """

    def __init__(self, seed: int | str | None = None):
        self.seed = seed
        self.random = random.Random(seed)

    def rand(self) -> float:
        return self.random.random()

    def randint(self, a: int, b: int) -> int:
        return self.random.randint(a, b)

    def choice(self, seq: Sequence[T]) -> T:
        return self.random.choice(seq)

    def uniform(self, a: float, b: float) -> float:
        return self.random.uniform(a, b)

    def chance(self, p: float) -> bool:
        """Bernoulli draw: True with probability `p`."""

        return self.rand() < p

    def weighted(self, items: Sequence[tuple[T, float]]) -> T | None:
        total = sum(max(0.0, w) for _, w in items)
        if total <= 0:
            return None
        roll = self.rand() * total
        for item, weight in items:
            roll -= max(0.0, weight)
            if roll <= 0:
                return item
        return items[-1][0]


class ScriptedRandom(GameRandom):
    """Replays a fixed sequence of floats in [0, 1); used to force branches.

    Integer and choice draws are derived from the same sequence so a script
    fully determines a run. Falls back to `default` once exhausted.
    """

    def __init__(self, values: Iterable[float], *, default: float = 0.5):
        super().__init__(seed=0)
        self._values = list(values)
        self._default = default
        self.draws = 0

    def rand(self) -> float:
        self.draws += 1
        if self._values:
            return self._values.pop(0)
        return self._default

    def randint(self, a: int, b: int) -> int:
        span = b - a + 1
        return a + min(span - 1, int(self.rand() * span))

    def choice(self, seq: Sequence[T]) -> T:
        if not seq:
            raise IndexError("Cannot choose from an empty sequence")
        return seq[min(len(seq) - 1, int(self.rand() * len(seq)))]

    def uniform(self, a: float, b: float) -> float:
        return a + (b - a) * self.rand()


def tick_random(seed: int, counter: int) -> GameRandom:
    """Stream for one persisted step; (seed, counter) replays it exactly."""

    return GameRandom(f"{seed}:{counter}")
