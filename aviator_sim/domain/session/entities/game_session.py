# aviator_sim/domain/session/entities/game_session.py
import logging
import time
from datetime import datetime
from typing import Dict, Any, List, Optional

from aviator_sim.domain.events.event_dispatcher import EventDispatcher
from aviator_sim.domain.events.round_events import RoundEventType, RoundEvent
from aviator_sim.infrastructure.persistence.errors import StoreUnavailableError
from .stats_ledger import StatsLedger


class GameSession:
    """
    One player's game session.

    Holds the collaborators of a RoundStateMachine (balance store, stats
    ledger, leaderboard, event sink, scheduler) and exposes the command
    interface a presentation layer talks to. Sessions never share mutable
    state with each other except through the external stores.
    """
    def __init__(self, session_id: str, machine, ledger: StatsLedger, balance_store,
                 leaderboard=None, event_dispatcher: Optional[EventDispatcher] = None,
                 scheduler=None, display_name: str = "Anonymous",
                 starting_balance: int = 1000):
        self.id = session_id
        self.machine = machine
        self.ledger = ledger
        self.balance_store = balance_store
        self.leaderboard = leaderboard
        self.event_dispatcher = event_dispatcher
        self.scheduler = scheduler
        self.display_name = display_name
        self.starting_balance = starting_balance

        self.logger = logging.getLogger(f"domain.session.{session_id}")
        self.created_at = time.time()
        self.logger.info(f"Session {session_id} created for {display_name} with balance {self.balance}")

    # 命令接口
    def start_round(self, bet: int, now: Optional[float] = None):
        return self.machine.start_round(bet, now)

    def cash_out(self):
        return self.machine.cash_out()

    def tick(self, now: float):
        return self.machine.tick(now)

    def toggle_auto_play(self) -> bool:
        return self.machine.toggle_auto_play()

    @property
    def balance(self) -> int:
        return self.balance_store.get_balance()

    def reset_session(self):
        """
        Back to a fresh start: starting balance, empty ledger, auto-play off.
        """
        self.machine.abort()

        try:
            self.balance_store.set_balance(self.starting_balance)
        except StoreUnavailableError as e:
            self._warn("reset_balance", e)
        try:
            self.ledger.reset()
        except StoreUnavailableError as e:
            self._warn("reset_stats", e)

        self.logger.info(f"Session reset to balance {self.starting_balance}")
        self._dispatch(RoundEventType.SESSION_RESET, {"balance": self.balance})
        self._dispatch(RoundEventType.STATUS, {"message": "Game reset to initial state", "level": "info"})

    def fetch_leaderboard(self, limit: int = 15) -> List[Dict[str, Any]]:
        if self.leaderboard is None:
            return []
        return self.leaderboard.fetch_top(limit)

    def flush(self) -> bool:
        """Retry pending balance writes, if the store supports it."""
        flush = getattr(self.balance_store, "flush", None)
        return flush() if flush else True

    def get_statistics(self) -> Dict[str, Any]:
        """
        Session statistics for reports and status displays.
        """
        stats = self.ledger.snapshot()
        stats.update({
            "session_id": self.id,
            "display_name": self.display_name,
            "balance": self.balance,
            "starting_balance": self.starting_balance,
            "balance_change": self.balance - self.starting_balance,
            "rounds_started": self.machine.round_count,
            "created_at": datetime.fromtimestamp(self.created_at).strftime('%Y-%m-%d %H:%M:%S')
        })
        return stats

    def get_settlement_history(self) -> List[Dict[str, Any]]:
        return [s.to_dict() for s in self.machine.settlements]

    def _warn(self, operation: str, error: StoreUnavailableError):
        self.logger.warning(f"Persistence failed during {operation}: {error.message}")
        self._dispatch(RoundEventType.PERSISTENCE_WARNING, {"operation": operation, "error": error.message})

    def _dispatch(self, event_type: RoundEventType, data: Dict[str, Any]):
        if self.event_dispatcher:
            self.event_dispatcher.dispatch(RoundEvent(type=event_type, session_id=self.id, data=data))
