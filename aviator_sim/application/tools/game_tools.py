# aviator_sim/application/tools/game_tools.py
import copy
import logging
from typing import Dict, Any, List, Optional

from aviator_sim.application.analysis.report_generator import multiplier_distribution, settlement_multipliers
from aviator_sim.application.simulation.coordinator import SimulationCoordinator
from aviator_sim.domain.round.entities.crash_timing_pool import CrashTimingPool
from aviator_sim.domain.round.entities.multiplier_curve import MultiplierCurve
from aviator_sim.infrastructure.persistence.leaderboard import Leaderboard
from aviator_sim.infrastructure.rng.rng_provider import RNGProvider


TEST_TYPES = ("multiplier_calculation", "crash_timings", "leaderboard", "all")
REPORT_TYPES = ("player_stats", "performance", "comprehensive")


class GameTools:
    """
    Tool operations exposed to chat assistants.

    Each call is self-contained: checks and analytics build their own
    sessions from the configuration and never touch live player state.
    Simulated sessions submit to ``leaderboard``, which ``get_leaderboard``
    reads back.
    """
    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 rng_provider: Optional[RNGProvider] = None,
                 leaderboard: Optional[Leaderboard] = None):
        self.logger = logging.getLogger("application.tools")
        self.config = config or {}
        self.rng_provider = rng_provider or RNGProvider()
        self.leaderboard = leaderboard if leaderboard is not None else Leaderboard()

    def test_game_mechanics(self, test_type: str = "all", iterations: int = 10,
                            seed: Optional[int] = None) -> Dict[str, Any]:
        """
        Run self-checks of the game mechanics.

        Args:
            test_type: One of ``TEST_TYPES``
            iterations: Number of repetitions per check
            seed: Optional RNG seed for reproducible checks

        Returns:
            ``{"test_type", "iterations", "passed", "results"}`` where results
            maps each check to its failures
        """
        if test_type not in TEST_TYPES:
            raise ValueError(f"Unknown test type: {test_type}")
        if iterations < 1:
            raise ValueError("iterations must be at least 1")

        rng_config = dict(self.config.get("rng", {}))
        if seed is not None:
            rng_config["seed"] = seed
        rng = self.rng_provider.for_session(rng_config)

        checks = {
            "multiplier_calculation": self._check_multipliers,
            "crash_timings": self._check_crash_timings,
            "leaderboard": self._check_leaderboard
        }
        selected = list(checks) if test_type == "all" else [test_type]

        results = {}
        for name in selected:
            failures = checks[name](rng, iterations)
            results[name] = {"passed": not failures, "failures": failures[:10]}
            self.logger.info(f"Check {name}: {'PASSED' if not failures else 'FAILED'} ({iterations} iterations)")

        return {
            "test_type": test_type,
            "iterations": iterations,
            "passed": all(r["passed"] for r in results.values()),
            "results": results
        }

    def _check_multipliers(self, rng, iterations: int) -> List[str]:
        curve = MultiplierCurve(rng, self.config.get("multiplier", {}))
        pool = CrashTimingPool(rng, self.config.get("crash_timing", {}))
        failures = []

        for _ in range(iterations):
            duration = pool.draw()
            crash = curve.crash_multiplier_for(duration)
            if not curve.min_crash <= crash <= curve.max_crash:
                failures.append(f"crash multiplier {crash:.4f} out of bounds for {duration:.0f}ms")

            elapsed = rng.uniform(0.0, duration)
            expected = curve.expected_multiplier_at(elapsed)
            value = curve.multiplier_at(elapsed)
            if abs(value - expected) > expected * curve.jitter + 1e-9:
                failures.append(f"multiplier {value:.4f} deviates from {expected:.4f} at {elapsed:.0f}ms")

        return failures

    def _check_crash_timings(self, rng, iterations: int) -> List[str]:
        failures = []
        for _ in range(iterations):
            pool = CrashTimingPool(rng, self.config.get("crash_timing", {}))
            durations = pool.generate()
            if len(durations) != pool.count:
                failures.append(f"pool has {len(durations)} timings, expected {pool.count}")
            for duration in durations:
                if not pool.min_ms <= duration <= pool.max_ms:
                    failures.append(f"timing {duration:.0f}ms outside [{pool.min_ms}, {pool.max_ms}]")
        return failures

    def _check_leaderboard(self, rng, iterations: int) -> List[str]:
        failures = []
        for _ in range(iterations):
            board = Leaderboard()
            for i in range(20):
                board.submit_score(f"player_{i}", rng.integer(0, 5000))
            top = board.fetch_top(Leaderboard.DEFAULT_LIMIT)
            coins = [entry["coins"] for entry in top]
            if len(top) != Leaderboard.DEFAULT_LIMIT:
                failures.append(f"fetch_top returned {len(top)} entries")
            if coins != sorted(coins, reverse=True):
                failures.append(f"leaderboard not ordered: {coins}")
        return failures

    def generate_analytics(self, report_type: str = "comprehensive", rounds: int = 100,
                           sessions: int = 1, bet: Optional[int] = None,
                           seed: Optional[int] = None) -> Dict[str, Any]:
        """
        Simulate auto-play sessions in memory and summarize them.

        Args:
            report_type: One of ``REPORT_TYPES``
            rounds: Round limit per session
            sessions: Number of sessions
            bet: Bet per round (config default when None)
            seed: Optional RNG seed
        """
        if report_type not in REPORT_TYPES:
            raise ValueError(f"Unknown report type: {report_type}")

        config = copy.deepcopy(self.config)
        config.setdefault("simulation", {})
        config["simulation"].update({"rounds": rounds, "sessions": sessions})
        if bet is not None:
            config["simulation"]["bet"] = bet
        if seed is not None:
            config.setdefault("rng", {})["seed"] = seed

        coordinator = SimulationCoordinator(self.rng_provider, leaderboard=self.leaderboard)
        results = coordinator.run_simulation(config)
        summary = results["summary"]

        analytics = {"report_type": report_type}
        if report_type in ("player_stats", "comprehensive"):
            analytics["player_stats"] = {
                "sessions": [
                    {
                        "display_name": s["display_name"],
                        "rounds_played": s["rounds_played"],
                        "final_balance": s["final_balance"],
                        "win_rate": s["run_statistics"]["win_rate"],
                        "highest_multiplier": s["run_statistics"]["highest_multiplier"],
                        "end_reason": s["end_reason"]
                    }
                    for s in results["sessions"]
                ],
                "win_rate": summary["win_rate"],
                "total_profit": summary["total_profit"],
                "highest_multiplier": summary["highest_multiplier"]
            }
        if report_type in ("performance", "comprehensive"):
            duration = results["duration"]
            analytics["performance"] = {
                "total_rounds": summary["total_rounds"],
                "wall_duration": duration,
                "rounds_per_second": summary["total_rounds"] / duration if duration > 0 else 0.0,
                "virtual_duration_ms": sum(s["virtual_duration_ms"] for s in results["sessions"]),
                "return_to_player": summary["return_to_player"]
            }
        if report_type == "comprehensive":
            analytics["multiplier_distribution"] = multiplier_distribution(settlement_multipliers(results))
            analytics["leaderboard"] = results["leaderboard"]

        return analytics

    def get_leaderboard(self, limit: int = Leaderboard.DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        return self.leaderboard.fetch_top(limit)
