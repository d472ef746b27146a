# tests/test_crash_curve.py
import unittest
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from aviator_sim.domain.round.entities.crash_timing_pool import CrashTimingPool
from aviator_sim.domain.round.entities.multiplier_curve import MultiplierCurve, format_multiplier
from aviator_sim.infrastructure.rng.strategies.mersenne_rng import MersenneTwisterRNG


class TestCrashTimingPool(unittest.TestCase):

    def test_default_pool(self):
        pool = CrashTimingPool(MersenneTwisterRNG(seed_value=1))
        durations = pool.generate()

        self.assertEqual(len(durations), 30)
        self.assertEqual(len(pool), 30)
        for duration in durations:
            self.assertGreaterEqual(duration, 3000)
            self.assertLessEqual(duration, 22000)

    def test_pool_covers_range(self):
        # 线性分布加抖动，排序后仍大致递增
        durations = sorted(CrashTimingPool(MersenneTwisterRNG(seed_value=2)).generate())
        self.assertLess(durations[0], 4000 + 1)
        self.assertGreater(durations[-1], 20000)

    def test_seeded_pool_reproducible(self):
        a = CrashTimingPool(MersenneTwisterRNG(seed_value=99)).generate()
        b = CrashTimingPool(MersenneTwisterRNG(seed_value=99)).generate()
        self.assertEqual(a, b)

    def test_generate_returns_copy(self):
        pool = CrashTimingPool(MersenneTwisterRNG(seed_value=3))
        durations = pool.generate()
        durations.clear()
        self.assertEqual(len(pool.durations), 30)

    def test_draw_from_pool(self):
        pool = CrashTimingPool(MersenneTwisterRNG(seed_value=4))
        # draw generates lazily
        first = pool.draw()
        self.assertIn(first, pool.durations)
        for _ in range(100):
            self.assertIn(pool.draw(), pool.durations)

    def test_custom_config(self):
        pool = CrashTimingPool(MersenneTwisterRNG(seed_value=5),
                               {"count": 5, "min_ms": 1000, "max_ms": 2000, "jitter_ms": 0})
        self.assertEqual(sorted(pool.generate()), [1000.0, 1200.0, 1400.0, 1600.0, 1800.0])
        self.assertEqual(len(pool.describe()), 5)

    def test_invalid_config(self):
        rng = MersenneTwisterRNG(seed_value=6)
        with self.assertRaises(ValueError):
            CrashTimingPool(rng, {"count": 0})
        with self.assertRaises(ValueError):
            CrashTimingPool(rng, {"min_ms": 5000, "max_ms": 1000})


class TestMultiplierCurve(unittest.TestCase):

    def setUp(self):
        self.curve = MultiplierCurve(MersenneTwisterRNG(seed_value=42))

    def test_crash_multiplier_bounds(self):
        for duration in range(0, 30001, 250):
            for _ in range(5):
                crash = self.curve.crash_multiplier_for(duration)
                self.assertGreaterEqual(crash, 1.5)
                self.assertLessEqual(crash, 20.0)

    def test_crash_multiplier_clamped_at_extremes(self):
        # e^(0.15*22) * 0.9 > 20
        self.assertEqual(self.curve.crash_multiplier_for(22000), 20.0)
        # e^(0.15*3) * [0.9, 1.1] 在 [1.41, 1.73] 之间，下限被钳到 1.5
        for _ in range(50):
            crash = self.curve.crash_multiplier_for(3000)
            self.assertGreaterEqual(crash, 1.5)
            self.assertLessEqual(crash, 1.73)

    def test_crash_multiplier_grows_with_duration(self):
        short = [self.curve.crash_multiplier_for(5000) for _ in range(50)]
        long = [self.curve.crash_multiplier_for(15000) for _ in range(50)]
        self.assertLess(max(short), min(long))

    def test_expected_curve_starts_at_one(self):
        self.assertEqual(self.curve.expected_multiplier_at(0), 1.0)

    def test_expected_curve_monotonic_over_early_flight(self):
        previous = self.curve.expected_multiplier_at(0)
        for elapsed in range(10, 8001, 10):
            value = self.curve.expected_multiplier_at(elapsed)
            self.assertGreaterEqual(value, previous, f"curve decreased at {elapsed}ms")
            previous = value

    def test_jitter_bounds(self):
        for elapsed in range(0, 20001, 100):
            expected = self.curve.expected_multiplier_at(elapsed)
            value = self.curve.multiplier_at(elapsed)
            self.assertLessEqual(abs(value - expected), expected * 0.005 + 1e-12)

    def test_growth_rate_oscillates(self):
        rates = [self.curve.growth_rate_at(ms) for ms in range(0, 10000, 100)]
        self.assertAlmostEqual(max(rates), 0.14, places=3)
        self.assertAlmostEqual(min(rates), 0.10, places=3)

    def test_config_overrides(self):
        curve = MultiplierCurve(MersenneTwisterRNG(seed_value=1), {
            "crash_factor_range": [1.0, 1.0],
            "min_crash_multiplier": 1.0,
            "max_crash_multiplier": 100.0,
            "jitter": 0.0
        })
        self.assertAlmostEqual(curve.crash_multiplier_for(10000), 4.4817, places=3)
        self.assertEqual(curve.multiplier_at(2000), curve.expected_multiplier_at(2000))

    def test_format_multiplier(self):
        self.assertEqual(format_multiplier(2), "2.00x")
        self.assertEqual(format_multiplier(1.234), "1.23x")


if __name__ == "__main__":
    unittest.main()
