# aviator_sim/infrastructure/rng/strategies/numpy_rng.py
import numpy as np
from typing import Optional, Sequence, List, TypeVar

T = TypeVar("T")


class NumpyRNG:
    """
    Randomness from a NumPy ``RandomState``.

    Draws are converted to plain ``int``/``float`` so that round data can go
    into events, JSON stores and reports without numpy scalar types.
    """
    name = "numpy"

    def __init__(self, seed_value: Optional[int] = None):
        self.seed_value = None
        self.state = None
        self.reseed(seed_value)

    def random(self) -> float:
        return float(self.state.random_sample())

    def uniform(self, low: float, high: float) -> float:
        return float(self.state.uniform(low, high))

    def integer(self, low: int, high: int) -> int:
        # randint 的上界是开区间
        return int(self.state.randint(low, high + 1))

    def pick(self, items: Sequence[T]) -> T:
        if len(items) == 0:
            raise IndexError("Cannot pick from an empty sequence")
        return items[int(self.state.randint(0, len(items)))]

    def shuffled(self, items: Sequence[T]) -> List[T]:
        return [items[int(i)] for i in self.state.permutation(len(items))]

    def reseed(self, seed_value: Optional[int]) -> None:
        self.seed_value = seed_value
        self.state = np.random.RandomState(seed_value)
