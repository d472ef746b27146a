# aviator_sim/domain/round/entities/crash_timing_pool.py
import logging
from typing import Dict, Any, List, Optional, Tuple


class CrashTimingPool:
    """
    Pool of target flight durations (milliseconds) used to derive crash points.

    The pool is generated once per game session: ``count`` durations spread
    linearly across [min_ms, max_ms], each perturbed by uniform jitter,
    clamped back into range and finally shuffled. Rounds draw from it
    uniformly with replacement.
    """
    DEFAULT_COUNT = 30
    DEFAULT_MIN_MS = 3000.0
    DEFAULT_MAX_MS = 22000.0
    DEFAULT_JITTER_MS = 1000.0

    def __init__(self, rng, config: Optional[Dict[str, Any]] = None):
        """
        Args:
            rng: RNG strategy used for jitter, shuffle and draws
            config: Optional ``crash_timing`` config section
        """
        config = config or {}
        self.rng = rng
        self.count = int(config.get("count", self.DEFAULT_COUNT))
        self.min_ms = float(config.get("min_ms", self.DEFAULT_MIN_MS))
        self.max_ms = float(config.get("max_ms", self.DEFAULT_MAX_MS))
        self.jitter_ms = float(config.get("jitter_ms", self.DEFAULT_JITTER_MS))

        if self.count < 1:
            raise ValueError(f"Crash timing pool needs at least one entry, got {self.count}")
        if self.min_ms > self.max_ms:
            raise ValueError(f"Invalid timing range: [{self.min_ms}, {self.max_ms}]")

        self.logger = logging.getLogger("domain.round.timing_pool")
        self._durations: List[float] = []

    def generate(self) -> List[float]:
        """
        Generate (or regenerate) the pool.

        Returns:
            A copy of the shuffled durations in milliseconds
        """
        span = self.max_ms - self.min_ms
        timings = []
        for i in range(self.count):
            base = self.min_ms + i * span / self.count
            jitter = self.rng.uniform(-self.jitter_ms, self.jitter_ms)
            timings.append(min(self.max_ms, max(self.min_ms, base + jitter)))

        self._durations = self.rng.shuffled(timings)
        self.logger.debug(
            f"Generated {len(self._durations)} crash timings in [{self.min_ms:.0f}, {self.max_ms:.0f}] ms"
        )
        return list(self._durations)

    def draw(self) -> float:
        """Pick one duration uniformly at random (with replacement)."""
        if not self._durations:
            self.generate()
        return self.rng.pick(self._durations)

    @property
    def durations(self) -> Tuple[float, ...]:
        return tuple(self._durations)

    def __len__(self) -> int:
        return len(self._durations)

    def describe(self) -> List[str]:
        """Timings in seconds with one decimal, for debugging output."""
        return [f"{t / 1000:.1f}" for t in self._durations]
