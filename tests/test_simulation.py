# tests/test_simulation.py
import json
import os
import sys
import tempfile
import unittest
from collections import deque

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from aviator_sim.application.analysis.report_generator import (
    ReportGenerator, multiplier_distribution, settlement_multipliers
)
from aviator_sim.application.simulation.coordinator import SimulationCoordinator, create_document_store
from aviator_sim.application.simulation.session_runner import SessionRunner
from aviator_sim.domain.session.factories.session_factory import SessionFactory
from aviator_sim.infrastructure.concurrency.task_executor import TaskExecutor, ExecutionMode
from aviator_sim.infrastructure.persistence.document_store import JsonFileDocumentStore
from aviator_sim.infrastructure.rng.rng_provider import RNGProvider


def game_config(seed=42, sessions=1, rounds=20, bet=10):
    return {
        "session": {"starting_balance": 1000, "display_name": "bot"},
        "rng": {"strategy": "mersenne", "seed": seed},
        "simulation": {"sessions": sessions, "rounds": rounds, "bet": bet, "frame_interval_ms": 1000 / 60},
        "leaderboard": {"limit": 15}
    }


class TestSessionRunner(unittest.TestCase):

    def setUp(self):
        self.factory = SessionFactory(RNGProvider())

    def test_runs_until_round_limit(self):
        config = game_config(rounds=20, bet=10)
        session = self.factory.create_session(config, session_id="r1")
        result = SessionRunner(session, config["simulation"]).run()

        self.assertEqual(result["rounds_played"], 20)
        self.assertEqual(result["end_reason"], "round_limit")
        self.assertEqual(len(result["settlements"]), 20)
        self.assertEqual(result["statistics"]["total_games"], 20)
        self.assertEqual(result["statistics"]["games_played"], 20)
        self.assertFalse(session.machine.autoplay.enabled)
        self.assertGreater(result["virtual_duration_ms"], 0)

        # balance follows the settlement profits exactly
        net = sum(s["profit"] for s in result["settlements"])
        self.assertEqual(result["final_balance"], 1000 + net)

    def test_auto_cashout_target_respected(self):
        config = game_config(rounds=30, bet=10, seed=7)
        session = self.factory.create_session(config, session_id="r2")
        runner = SessionRunner(session, config["simulation"])
        session.toggle_auto_play()
        target = session.machine.autoplay.auto_cashout_multiplier
        result = runner.run()

        for settlement in result["settlements"]:
            if settlement["type"] == "win":
                self.assertGreaterEqual(settlement["multiplier"], round(target, 2) - 0.01)

    def test_bet_above_balance(self):
        config = game_config(bet=5000)
        session = self.factory.create_session(config, session_id="r3")
        result = SessionRunner(session, config["simulation"]).run()

        self.assertEqual(result["rounds_played"], 0)
        self.assertEqual(result["end_reason"], "insufficient_balance")
        self.assertEqual(result["final_balance"], 1000)
        self.assertFalse(session.machine.autoplay.enabled)

    def test_time_limit(self):
        config = game_config(rounds=1000)
        config["simulation"]["max_virtual_time_ms"] = 10000
        session = self.factory.create_session(config, session_id="r4")
        result = SessionRunner(session, config["simulation"]).run()

        self.assertEqual(result["end_reason"], "time_limit")
        self.assertLess(result["rounds_played"], 1000)
        self.assertEqual(session.machine.state.name, "IDLE")

    def test_seeded_runs_are_reproducible(self):
        config = game_config(seed=99, rounds=15)
        first = SessionRunner(self.factory.create_session(config, session_id="a"), config["simulation"]).run()
        second = SessionRunner(self.factory.create_session(config, session_id="b"), config["simulation"]).run()
        self.assertEqual(first["settlements"], second["settlements"])

    def test_run_keeps_every_settlement(self):
        config = game_config(seed=3, rounds=12, bet=10)
        session = self.factory.create_session(config, session_id="r5")
        # the machine only remembers the latest rounds
        session.machine.settlements = deque(maxlen=5)
        result = SessionRunner(session, config["simulation"]).run()

        self.assertEqual(len(session.get_settlement_history()), 5)
        self.assertEqual(len(result["settlements"]), 12)
        self.assertEqual([s["round_number"] for s in result["settlements"]], list(range(1, 13)))
        self.assertEqual(result["run_statistics"]["rounds"], 12)
        self.assertEqual(result["run_statistics"]["total_bet"], 120)
        net = sum(s["profit"] for s in result["settlements"])
        self.assertEqual(result["final_balance"], result["initial_balance"] + net)


class TestSimulationCoordinator(unittest.TestCase):

    def test_aggregates_sessions(self):
        coordinator = SimulationCoordinator(RNGProvider())
        results = coordinator.run_simulation(game_config(sessions=3, rounds=10))

        self.assertEqual(len(results["sessions"]), 3)
        self.assertEqual([s["session_id"] for s in results["sessions"]],
                         ["session_001", "session_002", "session_003"])
        self.assertEqual(results["summary"]["total_rounds"], 30)
        self.assertLessEqual(len(results["leaderboard"]), 3)
        self.assertEqual(results["summary"]["end_reasons"], {"round_limit": 3})

    def test_threaded_matches_sequential(self):
        config = game_config(sessions=4, rounds=15, seed=5)
        sequential = SimulationCoordinator(RNGProvider()).run_simulation(config)
        threaded = SimulationCoordinator(
            RNGProvider(), TaskExecutor(ExecutionMode.MULTITHREAD, max_workers=4)
        ).run_simulation(config)

        for a, b in zip(sequential["sessions"], threaded["sessions"]):
            self.assertEqual(a["session_id"], b["session_id"])
            self.assertEqual(a["settlements"], b["settlements"])
            self.assertEqual(a["final_balance"], b["final_balance"])

    def test_sessions_are_independent(self):
        results = SimulationCoordinator(RNGProvider()).run_simulation(game_config(sessions=2, rounds=15))
        first, second = results["sessions"]
        self.assertNotEqual(first["settlements"], second["settlements"])

    def test_local_storage(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = create_document_store({"backend": "local", "base_dir": tmp})
            self.assertIsInstance(store, JsonFileDocumentStore)

            results = SimulationCoordinator(RNGProvider(), document_store=store).run_simulation(
                game_config(sessions=2, rounds=5)
            )
            for session in results["sessions"]:
                with open(os.path.join(tmp, "balances", f"{session['session_id']}.json"), encoding="utf-8") as f:
                    self.assertEqual(json.load(f)["coins"], session["final_balance"])
                self.assertTrue(os.path.isfile(os.path.join(tmp, "stats", f"{session['session_id']}.json")))

    def test_unknown_backend(self):
        self.assertIsNone(create_document_store({}))
        with self.assertRaises(ValueError):
            create_document_store({"backend": "floppy"})

    def test_second_run_on_persisted_store(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = JsonFileDocumentStore(tmp)
            config = game_config(sessions=1, rounds=5, seed=11)
            first = SimulationCoordinator(RNGProvider(), document_store=store).run_simulation(config)
            second = SimulationCoordinator(RNGProvider(), document_store=store).run_simulation(config)

            before, after = first["sessions"][0], second["sessions"][0]
            self.assertEqual(after["initial_balance"], before["final_balance"])
            self.assertEqual(after["rounds_played"], 5)
            self.assertEqual(after["run_statistics"]["rounds"], 5)
            # the ledger spans both runs, the summary only the second
            self.assertEqual(after["statistics"]["total_games"], 10)
            self.assertEqual(second["summary"]["total_rounds"], 5)
            self.assertEqual(second["summary"]["total_bet"], 50)
            self.assertEqual(second["summary"]["balance_change"],
                             after["final_balance"] - after["initial_balance"])


class TestReportGenerator(unittest.TestCase):

    def setUp(self):
        self.results = SimulationCoordinator(RNGProvider()).run_simulation(game_config(sessions=2, rounds=25))

    def test_distribution(self):
        multipliers = settlement_multipliers(self.results)
        self.assertEqual(len(multipliers), 50)
        distribution = multiplier_distribution(multipliers, bins=5)
        self.assertEqual(distribution["count"], 50)
        self.assertEqual(sum(distribution["counts"]), 50)
        self.assertEqual(len(distribution["bins"]), 6)
        self.assertEqual(multiplier_distribution([])["count"], 0)

    def test_reports_written(self):
        with tempfile.TemporaryDirectory() as tmp:
            generator = ReportGenerator(os.path.join(tmp, "reports"))
            summary_path = generator.generate_summary_report(self.results)
            detailed_path = generator.generate_detailed_report(self.results)

            with open(summary_path, encoding="utf-8") as f:
                summary = json.load(f)
            self.assertEqual(summary["simulation_summary"]["session_count"], 2)
            self.assertIn("wins", summary["multiplier_distribution"])

            with open(detailed_path, encoding="utf-8") as f:
                detailed = json.load(f)
            self.assertEqual(len(detailed["sessions"]), 2)

    def test_histogram(self):
        with tempfile.TemporaryDirectory() as tmp:
            generator = ReportGenerator(tmp)
            path = generator.plot_multiplier_histogram(self.results)
            self.assertTrue(os.path.isfile(path))
            self.assertIsNone(generator.plot_multiplier_histogram({"sessions": []}))


if __name__ == "__main__":
    unittest.main()
