# aviator_sim/infrastructure/rng/strategies/mersenne_rng.py
import random
from typing import Optional, Sequence, List, TypeVar

T = TypeVar("T")


class MersenneTwisterRNG:
    """Python's Mersenne Twister, one private generator per session."""
    name = "mersenne"

    def __init__(self, seed_value: Optional[int] = None):
        # 每个会话独立的 random.Random，避免共享全局状态
        self._random = random.Random()
        self.seed_value = None
        self.reseed(seed_value)

    def random(self) -> float:
        return self._random.random()

    def uniform(self, low: float, high: float) -> float:
        return self._random.uniform(low, high)

    def integer(self, low: int, high: int) -> int:
        return self._random.randint(low, high)

    def pick(self, items: Sequence[T]) -> T:
        if not items:
            raise IndexError("Cannot pick from an empty sequence")
        return self._random.choice(items)

    def shuffled(self, items: Sequence[T]) -> List[T]:
        result = list(items)
        self._random.shuffle(result)
        return result

    def reseed(self, seed_value: Optional[int]) -> None:
        self.seed_value = seed_value
        self._random.seed(seed_value)
