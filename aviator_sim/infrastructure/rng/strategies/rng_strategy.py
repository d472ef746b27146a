# aviator_sim/infrastructure/rng/strategies/rng_strategy.py
from typing import Optional, Protocol, Sequence, List, TypeVar

T = TypeVar("T")


class RNGStrategy(Protocol):
    """
    Randomness source injected into the round engine.

    Crash timings, crash factors, curve jitter and auto-cashout targets are
    all drawn through this interface, so a seeded strategy makes a whole
    session reproducible. Implementations return plain Python numbers.
    """
    name: str
    seed_value: Optional[int]

    def random(self) -> float:
        """Float in [0.0, 1.0)."""
        ...

    def uniform(self, low: float, high: float) -> float:
        """Float in [low, high]."""
        ...

    def integer(self, low: int, high: int) -> int:
        """Integer in [low, high], both inclusive."""
        ...

    def pick(self, items: Sequence[T]) -> T:
        """
        One element of ``items``, uniformly, with replacement.

        Raises:
            IndexError: if items is empty
        """
        ...

    def shuffled(self, items: Sequence[T]) -> List[T]:
        """Uniform permutation of ``items`` as a new list."""
        ...

    def reseed(self, seed_value: Optional[int]) -> None:
        ...
