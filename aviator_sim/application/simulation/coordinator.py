# aviator_sim/application/simulation/coordinator.py
import logging
import time
from typing import Dict, List, Any, Optional

from aviator_sim.domain.session.factories.session_factory import SessionFactory
from aviator_sim.application.simulation.session_runner import SessionRunner
from aviator_sim.infrastructure.concurrency.keyed_lock import KeyedLock
from aviator_sim.infrastructure.concurrency.task_executor import TaskExecutor, ExecutionMode
from aviator_sim.infrastructure.persistence.document_store import MemoryDocumentStore, JsonFileDocumentStore
from aviator_sim.infrastructure.persistence.leaderboard import Leaderboard
from aviator_sim.infrastructure.scheduling.scheduler import VirtualScheduler


def create_document_store(storage_config: Dict[str, Any]):
    """
    Build the document store named by the ``storage`` config section.

    Returns:
        A document store, or None for pure in-memory sessions
    """
    backend = storage_config.get("backend", "memory")
    if backend == "memory":
        return None
    if backend == "local":
        return JsonFileDocumentStore(storage_config.get("base_dir", "data"))
    if backend == "s3":
        # boto3 只在需要时导入
        from aviator_sim.infrastructure.persistence.s3_document_store import S3DocumentStore
        s3_config = storage_config.get("s3", {})
        return S3DocumentStore(
            bucket=s3_config.get("bucket", "aviator-game-data"),
            region=s3_config.get("region", "us-west-2"),
            prefix=s3_config.get("prefix", "aviator")
        )
    raise ValueError(f"Unknown storage backend: {backend}")


class SimulationCoordinator:
    """
    Runs several isolated game sessions and aggregates their results.

    Sessions share nothing but the document store and the leaderboard;
    each one gets its own RNG (seeded with the configured seed plus its
    index), state machine, ledger, event dispatcher and virtual scheduler,
    so they can run on a thread pool without coordination.
    """
    def __init__(self, rng_provider, task_executor: Optional[TaskExecutor] = None,
                 document_store=None, leaderboard: Optional[Leaderboard] = None):
        self.logger = logging.getLogger("application.simulation.coordinator")
        self.rng_provider = rng_provider
        self.task_executor = task_executor or TaskExecutor(ExecutionMode.SEQUENTIAL)
        self.document_store = document_store
        self.locks = KeyedLock()

        if leaderboard is None:
            # 排行榜使用共享存储时也一并持久化
            store = document_store if document_store is not None else MemoryDocumentStore()
            leaderboard = Leaderboard(store, locks=self.locks)
        self.leaderboard = leaderboard

        self.session_factory = SessionFactory(
            rng_provider, document_store=document_store,
            leaderboard=self.leaderboard, locks=self.locks
        )
        self.results = {}

    def run_simulation(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run ``simulation.sessions`` sessions of ``simulation.rounds`` rounds each.

        Args:
            config: Full game configuration

        Returns:
            Dictionary with per-session results and aggregates
        """
        sim_config = dict(config.get("simulation", {}))
        session_count = int(sim_config.get("sessions", 1))
        base_name = config.get("session", {}).get("display_name", "Anonymous")

        self.logger.info(
            f"Starting simulation: {session_count} sessions x {sim_config.get('rounds', 100)} rounds "
            f"({self.task_executor.mode.name})"
        )
        self.results = {
            "start_time": time.time(),
            "end_time": None,
            "sessions": []
        }

        tasks = [
            self._make_task(config, sim_config, index, base_name, session_count)
            for index in range(session_count)
        ]
        self.results["sessions"] = self.task_executor.execute(tasks)

        self.results["end_time"] = time.time()
        self.results["duration"] = self.results["end_time"] - self.results["start_time"]
        self.results["summary"] = self.summarize(self.results["sessions"])
        limit = config.get("leaderboard", {}).get("limit", Leaderboard.DEFAULT_LIMIT)
        self.results["leaderboard"] = self.leaderboard.fetch_top(limit)

        self.logger.info(
            f"Simulation completed in {self.results['duration']:.2f} seconds - "
            f"{self.results['summary']['total_rounds']} rounds"
        )
        return self.results

    def _make_task(self, config: Dict[str, Any], sim_config: Dict[str, Any],
                   index: int, base_name: str, session_count: int):
        session_id = f"session_{index + 1:03d}"
        display_name = base_name if session_count == 1 else f"{base_name}_{index + 1}"

        def task():
            scheduler = VirtualScheduler(
                frame_interval_ms=float(sim_config.get(
                    "frame_interval_ms", VirtualScheduler.DEFAULT_FRAME_INTERVAL_MS
                ))
            )
            session = self.session_factory.create_session(
                config,
                session_id=session_id,
                display_name=display_name,
                user_key=session_id,
                scheduler=scheduler,
                seed_offset=index
            )
            return SessionRunner(session, sim_config).run()

        return task

    @staticmethod
    def summarize(sessions: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Aggregate counters over finished sessions.

        Only this run's rounds count: a persisted ledger may already hold
        rounds from earlier runs of the same player.
        """
        runs = [s["run_statistics"] for s in sessions]
        total_rounds = sum(s["rounds_played"] for s in sessions)
        total_wins = sum(r["wins"] for r in runs)
        total_bet = sum(r["total_bet"] for r in runs)
        total_returned = sum(r["total_returned"] for r in runs)
        highest = max((r["highest_multiplier"] for r in runs), default=1.0)
        end_reasons = {}
        for s in sessions:
            end_reasons[s["end_reason"]] = end_reasons.get(s["end_reason"], 0) + 1

        return {
            "session_count": len(sessions),
            "total_rounds": total_rounds,
            "total_wins": total_wins,
            "win_rate": total_wins / total_rounds if total_rounds > 0 else 0.0,
            "total_profit": sum(r["profit"] for r in runs),
            "total_bet": total_bet,
            "total_returned": total_returned,
            "return_to_player": total_returned / total_bet if total_bet > 0 else 0.0,
            "highest_multiplier": highest,
            "balance_change": sum(s["final_balance"] - s["initial_balance"] for s in sessions),
            "end_reasons": end_reasons
        }
