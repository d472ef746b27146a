# aviator_sim/infrastructure/persistence/leaderboard.py
import logging
from dataclasses import dataclass
from typing import Dict, Any, List, Optional

from aviator_sim.infrastructure.concurrency.keyed_lock import KeyedLock
from .errors import StoreUnavailableError


@dataclass
class LeaderboardEntry:
    name: str
    coins: int
    sequence: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "coins": self.coins}


class Leaderboard:
    """
    Ranked coin balances, one entry per display name.

    A new submission for a name replaces its previous entry (and its arrival
    position). ``fetch_top`` ranks by coins descending; equal coins keep
    arrival order. When a document store is given the whole board is kept
    in a single document and every submission is written through.
    """
    DEFAULT_LIMIT = 15

    def __init__(self, document_store=None, key: str = "leaderboard",
                 locks: Optional[KeyedLock] = None):
        self.logger = logging.getLogger("infrastructure.persistence.leaderboard")
        self.document_store = document_store
        self.key = key
        self.locks = locks or KeyedLock()
        self._entries: Dict[str, LeaderboardEntry] = {}
        self._next_sequence = 0

        if self.document_store is not None:
            self._load()

    def _load(self):
        try:
            document = self.document_store.get(self.key) or {}
        except StoreUnavailableError as e:
            self.logger.warning(f"Could not load leaderboard, starting empty: {e}")
            return

        for item in document.get("entries", []):
            entry = LeaderboardEntry(item["name"], int(item["coins"]), int(item.get("sequence", 0)))
            self._entries[entry.name] = entry
            self._next_sequence = max(self._next_sequence, entry.sequence + 1)
        self.logger.debug(f"Loaded {len(self._entries)} leaderboard entries")

    def submit_score(self, display_name: str, coins: int) -> None:
        """
        Record ``coins`` for ``display_name``.

        Raises:
            StoreUnavailableError: if the backing document store rejected the
                write; the in-memory board is already updated
        """
        name = display_name or "Anonymous"
        with self.locks.hold(self.key):
            self._entries[name] = LeaderboardEntry(name, int(coins), self._next_sequence)
            self._next_sequence += 1
            self.logger.debug(f"Score submitted: {name} -> {coins}")

            if self.document_store is not None:
                self.document_store.put(self.key, {
                    "entries": [
                        {"name": e.name, "coins": e.coins, "sequence": e.sequence}
                        for e in self._entries.values()
                    ]
                })

    def fetch_top(self, n: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        with self.locks.hold(self.key):
            ranked = sorted(self._entries.values(), key=lambda e: (-e.coins, e.sequence))
        return [entry.to_dict() for entry in ranked[:max(0, n)]]

    def rank_of(self, display_name: str) -> Optional[int]:
        """1-based rank of a player, or None if never submitted."""
        for index, entry in enumerate(self.fetch_top(len(self._entries)), start=1):
            if entry["name"] == display_name:
                return index
        return None

    def __len__(self) -> int:
        return len(self._entries)
