# aviator_sim/infrastructure/rng/rng_provider.py
import logging
from typing import Optional, Dict, Any

from .strategies.rng_strategy import RNGStrategy
from .strategies.mersenne_rng import MersenneTwisterRNG
from .strategies.numpy_rng import NumpyRNG


class RNGProvider:
    """
    Builds the randomness source of each game session.

    Sessions never share a generator: ``for_session`` derives a distinct
    but reproducible seed per session from the configured base seed.
    """
    STRATEGIES = {
        MersenneTwisterRNG.name: MersenneTwisterRNG,
        NumpyRNG.name: NumpyRNG,
    }
    DEFAULT_STRATEGY = MersenneTwisterRNG.name

    def __init__(self):
        self.logger = logging.getLogger("infrastructure.rng")

    def create(self, strategy_name: str, seed: Optional[int] = None) -> RNGStrategy:
        """
        Raises:
            ValueError: if the strategy name is unknown
        """
        strategy = self.STRATEGIES.get(strategy_name.lower())
        if strategy is None:
            self.logger.error(f"Unknown RNG strategy: {strategy_name}")
            raise ValueError(
                f"Unknown RNG strategy: {strategy_name} (available: {', '.join(self.STRATEGIES)})"
            )
        self.logger.debug(f"Creating {strategy.name} RNG with seed {seed}")
        return strategy(seed)

    def for_session(self, rng_config: Dict[str, Any], seed_offset: int = 0) -> RNGStrategy:
        """
        RNG for one session from the ``rng`` config section.

        Args:
            rng_config: ``{"strategy": "mersenne"|"numpy", "seed": int|None}``
            seed_offset: Session index; added to a configured seed. Unseeded
                configs stay unseeded.
        """
        seed = rng_config.get("seed")
        if seed is not None:
            seed = int(seed) + seed_offset
        return self.create(rng_config.get("strategy", self.DEFAULT_STRATEGY), seed)
