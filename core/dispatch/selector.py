"""
Clip selection with anti-repetition.

"sequential" cycles round-robin through the candidates; "random" draws
uniformly but never returns the previous clip again when two or more
are available.
"""

import random
from typing import Dict, Hashable, Optional, Sequence, TypeVar

T = TypeVar("T")


class ClipSelector:
    """Per-slot variation state; one slot per (transition, category)."""

    def __init__(self, strategy: str = "sequential", rng: Optional[random.Random] = None):
        if strategy not in ("sequential", "random"):
            raise ValueError(f"Unknown selection strategy: {strategy}")
        self.strategy = strategy
        self._rng = rng or random.Random()
        self._last: Dict[Hashable, int] = {}

    def select(self, slot: Hashable, candidates: Sequence[T]) -> Optional[T]:
        n = len(candidates)
        if n == 0:
            return None
        if n == 1:
            self._last[slot] = 0
            return candidates[0]

        last = self._last.get(slot)
        if self.strategy == "sequential":
            idx = 0 if last is None else (last + 1) % n
        elif last is None or last >= n:
            idx = self._rng.randrange(n)
        else:
            # draw from the n-1 others
            idx = self._rng.randrange(n - 1)
            if idx >= last:
                idx += 1

        self._last[slot] = idx
        return candidates[idx]

    def reset(self) -> None:
        self._last.clear()
