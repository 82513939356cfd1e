"""Uniform random selection over an injected random source."""

from __future__ import annotations

from typing import Protocol
from typing import Sequence
from typing import TypeVar

T = TypeVar("T")


class RandomSource(Protocol):
    def randrange(self, stop: int) -> int: ...


def pick_uniform(candidates: Sequence[T], rng: RandomSource) -> T | None:
    """Pick one candidate uniformly at random, or ``None`` if there are none."""
    if not candidates:
        return None
    return candidates[rng.randrange(len(candidates))]
