# aviator_sim/domain/session/entities/stats_ledger.py
from dataclasses import dataclass, field
from typing import Dict, Any, Optional


@dataclass
class StatsLedger:
    """
    会话累计统计。

    Counters only grow until ``reset()``. When a repository is attached the
    ledger is saved after every mutation; the in-memory update is always
    applied first, so a failing store never loses a round's statistics.
    """
    total_games: int = 0
    total_wins: int = 0
    total_profit: int = 0
    highest_multiplier: float = 1.0
    games_played: int = 0
    repository: Optional[Any] = field(default=None, repr=False, compare=False)

    COUNTER_FIELDS = ("total_games", "total_wins", "total_profit", "highest_multiplier", "games_played")

    @property
    def win_rate(self) -> float:
        return self.total_wins / self.total_games if self.total_games > 0 else 0.0

    def record_round_started(self):
        """A round took off (counted even if it is never settled)."""
        self.games_played += 1
        self._persist()

    def record_win(self, profit: int, multiplier: float):
        self.total_games += 1
        self.total_wins += 1
        self.total_profit += profit
        self._update_highest(multiplier)
        self._persist()

    def record_loss(self, multiplier: Optional[float] = None):
        # 坠毁不计入 total_profit，只记录局数和最高倍数
        self.total_games += 1
        if multiplier is not None:
            self._update_highest(multiplier)
        self._persist()

    def reset(self):
        self.total_games = 0
        self.total_wins = 0
        self.total_profit = 0
        self.highest_multiplier = 1.0
        self.games_played = 0
        self._persist()

    def snapshot(self) -> Dict[str, Any]:
        stats = {name: getattr(self, name) for name in self.COUNTER_FIELDS}
        stats["win_rate"] = self.win_rate
        return stats

    def to_record(self) -> Dict[str, Any]:
        """Persistable form (counters only)."""
        return {name: getattr(self, name) for name in self.COUNTER_FIELDS}

    @classmethod
    def from_record(cls, record: Optional[Dict[str, Any]], repository=None) -> "StatsLedger":
        record = record or {}
        ledger = cls(repository=repository)
        ledger.total_games = int(record.get("total_games", 0))
        ledger.total_wins = int(record.get("total_wins", 0))
        ledger.total_profit = int(record.get("total_profit", 0))
        ledger.highest_multiplier = float(record.get("highest_multiplier", 1.0))
        ledger.games_played = int(record.get("games_played", 0))
        return ledger

    @classmethod
    def load(cls, repository) -> "StatsLedger":
        """Restore the ledger persisted in ``repository`` (fresh one if none)."""
        return cls.from_record(repository.load(), repository=repository)

    def _update_highest(self, multiplier: float):
        if multiplier > self.highest_multiplier:
            self.highest_multiplier = multiplier

    def _persist(self):
        if self.repository is not None:
            self.repository.save(self.to_record())
