# aviator_sim/domain/round/entities/round.py
import math
from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Any, Optional


class RoundState(Enum):
    """Lifecycle states of the round state machine."""
    IDLE = auto()
    BETTING = auto()
    FLYING = auto()
    RESOLVED = auto()


class Outcome(Enum):
    WIN = "win"
    CRASH = "crash"


@dataclass
class Settlement:
    """Outcome of a resolved round."""
    outcome: Outcome
    round_number: int
    bet: int
    multiplier: float
    amount: int          # 赢额（win）或损失的投注（crash）
    profit: int
    balance_after: Optional[int] = None

    @property
    def is_win(self) -> bool:
        return self.outcome is Outcome.WIN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.outcome.value,
            "round_number": self.round_number,
            "bet": self.bet,
            "multiplier": round(self.multiplier, 2),
            "amount": self.amount,
            "profit": self.profit,
            "balance_after": self.balance_after,
        }


@dataclass
class Round:
    """One bet-to-resolution cycle."""
    round_number: int
    bet: int
    crash_duration_ms: float
    crash_multiplier: float
    started_at: float
    current_multiplier: float = 1.0
    state: RoundState = RoundState.BETTING
    last_tick_at: Optional[float] = None
    tick_count: int = 0
    settlement: Optional[Settlement] = None

    def elapsed_ms(self, now: float) -> float:
        return max(0.0, now - self.started_at)

    def potential_win(self) -> int:
        """Coins paid out if the player cashed out right now."""
        return math.floor(self.bet * self.current_multiplier)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "round_number": self.round_number,
            "bet": self.bet,
            "crash_duration_ms": round(self.crash_duration_ms, 1),
            "crash_multiplier": round(self.crash_multiplier, 2),
            "current_multiplier": round(self.current_multiplier, 2),
            "started_at": self.started_at,
            "state": self.state.name,
            "tick_count": self.tick_count,
        }
        if self.settlement is not None:
            data["settlement"] = self.settlement.to_dict()
        return data


@dataclass
class AutoPlayPolicy:
    """
    Auto-play state of a session.

    A new auto-cashout target is drawn each time auto-play is switched on
    and kept for every round until it is switched off again.
    """
    enabled: bool = False
    auto_cashout_multiplier: float = 0.0
    min_cashout: float = 2.0
    max_cashout: float = 8.0

    def enable(self, rng) -> float:
        # [min, max) 区间均匀分布
        self.enabled = True
        self.auto_cashout_multiplier = self.min_cashout + rng.random() * (self.max_cashout - self.min_cashout)
        return self.auto_cashout_multiplier

    def disable(self):
        self.enabled = False
        self.auto_cashout_multiplier = 0.0

    def should_cash_out(self, multiplier: float) -> bool:
        return self.enabled and self.auto_cashout_multiplier > 0 and multiplier >= self.auto_cashout_multiplier
