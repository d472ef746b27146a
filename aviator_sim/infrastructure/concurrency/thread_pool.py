# aviator_sim/infrastructure/concurrency/thread_pool.py
import concurrent.futures
import logging
from typing import Callable, List, Optional, TypeVar

T = TypeVar("T")


class ThreadPool:
    """Runs session tasks on worker threads named ``aviator-session_N``."""
    THREAD_NAME_PREFIX = "aviator-session"

    def __init__(self, max_workers: int = None):
        self.max_workers = max_workers
        self.logger = logging.getLogger("infrastructure.thread_pool")

    def execute_tasks(self, tasks: List[Callable[[], T]],
                      on_done: Optional[Callable[[int], None]] = None) -> List[T]:
        """
        Run tasks concurrently.

        Args:
            tasks: Zero-argument callables
            on_done: Called with the number of finished tasks as each one completes

        Returns:
            Results in the order of ``tasks``. The first task failure is re-raised
            once every task has finished.
        """
        self.logger.info(f"Executing {len(tasks)} tasks with {self.max_workers or 'default'} workers")
        results: List[Optional[T]] = [None] * len(tasks)

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix=self.THREAD_NAME_PREFIX
        ) as executor:
            futures = {executor.submit(task): index for index, task in enumerate(tasks)}
            failure = None
            for done, future in enumerate(concurrent.futures.as_completed(futures), start=1):
                try:
                    results[futures[future]] = future.result()
                except Exception as e:
                    self.logger.error(f"Task {futures[future]} failed: {e}")
                    failure = failure or e
                if on_done:
                    on_done(done)

        if failure is not None:
            raise failure
        return results
