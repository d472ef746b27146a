# aviator_sim/infrastructure/concurrency/keyed_lock.py
import threading
from contextlib import contextmanager
from typing import Dict


class KeyedLock:
    """
    One re-entrant lock per key.

    Shared stores use it to serialize balance and leaderboard writes per user
    key while sessions for different users proceed in parallel.
    """
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def _lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str):
        lock = self._lock_for(key)
        with lock:
            yield
