# aviator_sim/infrastructure/concurrency/task_executor.py
import logging
from enum import Enum, auto
from typing import List, Callable, TypeVar, Any, Optional

from aviator_sim.infrastructure.concurrency.thread_pool import ThreadPool

T = TypeVar("T")


class ExecutionMode(Enum):
    SEQUENTIAL = auto()
    MULTITHREAD = auto()


class TaskExecutor:
    """
    Runs independent session tasks one after another or on a thread pool.

    Sessions hold their own scheduler and RNG, so both modes give the same
    per-session results for the same seed.
    """
    def __init__(self, mode: ExecutionMode, max_workers: int = None):
        self.mode = mode
        self.max_workers = max_workers
        self.logger = logging.getLogger("infrastructure.task_executor")
        self.pool = ThreadPool(max_workers) if mode is ExecutionMode.MULTITHREAD else None

    def execute(self, tasks: List[Callable[[], T]]) -> List[T]:
        return self.execute_with_progress(tasks)

    def execute_with_progress(self, tasks: List[Callable[[], T]],
                              progress_callback: Optional[Callable[[int, int], Any]] = None) -> List[T]:
        """
        Args:
            tasks: Zero-argument callables
            progress_callback: ``callback(done, total)`` after each finished task

        Returns:
            Results in the order of ``tasks``
        """
        total = len(tasks)
        self.logger.info(f"Executing {total} tasks in {self.mode.name} mode")

        def report(done: int):
            if progress_callback:
                progress_callback(done, total)

        if self.pool is not None:
            return self.pool.execute_tasks(tasks, on_done=report)

        results = []
        for task in tasks:
            results.append(task())
            report(len(results))
        return results
