# aviator_sim/domain/round/entities/multiplier_curve.py
import math
from typing import Dict, Any, Optional


def format_multiplier(value: float) -> str:
    """Display form used in status messages, e.g. ``2.00x``."""
    return f"{value:.2f}x"


class MultiplierCurve:
    """
    Maps flight time to the multiplier shown to the player and flight
    durations to crash multipliers.

    Both directions consume randomness from the injected RNG strategy:
    ``crash_multiplier_for`` applies a random factor around the exponential
    target and ``multiplier_at`` applies a small per-call jitter, so calling it
    twice with the same elapsed time may return slightly different values.
    Seed the RNG to get reproducible sequences.
    """
    CRASH_GROWTH_RATE = 0.15
    CRASH_FACTOR_RANGE = (0.9, 1.1)
    MIN_CRASH_MULTIPLIER = 1.5
    MAX_CRASH_MULTIPLIER = 20.0

    BASE_GROWTH_RATE = 0.12
    GROWTH_WAVE_AMPLITUDE = 0.02
    JITTER = 0.005  # ±0.5%

    def __init__(self, rng, config: Optional[Dict[str, Any]] = None):
        """
        Args:
            rng: RNG strategy
            config: Optional ``multiplier`` config section
        """
        config = config or {}
        self.rng = rng
        self.crash_growth_rate = config.get("crash_growth_rate", self.CRASH_GROWTH_RATE)
        factor_range = config.get("crash_factor_range", self.CRASH_FACTOR_RANGE)
        self.crash_factor_min, self.crash_factor_max = float(factor_range[0]), float(factor_range[1])
        self.min_crash = config.get("min_crash_multiplier", self.MIN_CRASH_MULTIPLIER)
        self.max_crash = config.get("max_crash_multiplier", self.MAX_CRASH_MULTIPLIER)
        self.base_growth_rate = config.get("base_growth_rate", self.BASE_GROWTH_RATE)
        self.wave_amplitude = config.get("growth_wave_amplitude", self.GROWTH_WAVE_AMPLITUDE)
        self.jitter = config.get("jitter", self.JITTER)

    def crash_multiplier_for(self, duration_ms: float) -> float:
        """
        Target crash multiplier for a flight duration.

        Args:
            duration_ms: Duration drawn from the crash timing pool

        Returns:
            e^(rate * seconds) scaled by a random factor, clamped to
            [min_crash, max_crash]
        """
        seconds = duration_ms / 1000.0
        base = math.exp(self.crash_growth_rate * seconds)
        factor = self.rng.uniform(self.crash_factor_min, self.crash_factor_max)
        return max(self.min_crash, min(self.max_crash, base * factor))

    def growth_rate_at(self, elapsed_ms: float) -> float:
        return self.base_growth_rate + self.wave_amplitude * math.sin(elapsed_ms / 1000.0)

    def expected_multiplier_at(self, elapsed_ms: float) -> float:
        """Multiplier curve without the liveliness jitter."""
        seconds = elapsed_ms / 1000.0
        return math.exp(self.growth_rate_at(elapsed_ms) * seconds)

    def multiplier_at(self, elapsed_ms: float) -> float:
        """
        Multiplier shown after ``elapsed_ms`` of flight, including jitter.
        """
        noise = self.rng.uniform(1.0 - self.jitter, 1.0 + self.jitter)
        return self.expected_multiplier_at(elapsed_ms) * noise
