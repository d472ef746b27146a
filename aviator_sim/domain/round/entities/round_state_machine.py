# aviator_sim/domain/round/entities/round_state_machine.py
import logging
import math
import time
from collections import deque
from typing import Dict, Any, Optional, Callable

from aviator_sim.domain.events.event_dispatcher import EventDispatcher
from aviator_sim.domain.events.round_events import RoundEventType, RoundEvent
from aviator_sim.domain.round.errors import InvalidBet, RoundAlreadyActive, NoActiveRound, RoundError
from aviator_sim.infrastructure.persistence.errors import StoreUnavailableError
from .multiplier_curve import format_multiplier
from .round import Round, RoundState, Settlement, Outcome, AutoPlayPolicy


class RoundStateMachine:
    """
    Owns the lifecycle of the rounds played in one game session.

    Commands (``start_round``, ``cash_out``, ``toggle_auto_play``) come from a
    presentation layer or a runner; ``tick`` is driven by a scheduler at frame
    cadence. When a scheduler is attached the machine requests its own
    frames while a round is flying and cancels them as soon as the round is
    resolved. Without one, the caller is expected to call ``tick`` itself.

    All state changes happen synchronously on the caller's thread; one
    machine must not be shared between threads.
    """
    BIG_WIN_MULTIPLIER = 5.0
    DEFAULT_RESTART_DELAY_MS = 2000.0
    HISTORY_SIZE = 1000

    def __init__(self, session_id: str, balance_store, timing_pool, curve, ledger, rng,
                 event_dispatcher: Optional[EventDispatcher] = None,
                 leaderboard=None, display_name: str = "Anonymous",
                 scheduler=None, clock: Optional[Callable[[], float]] = None,
                 config: Optional[Dict[str, Any]] = None):
        """
        Args:
            session_id: Owning session, used in events and logger names
            balance_store: BalanceStore debited/credited by rounds
            timing_pool: CrashTimingPool drawn once per round
            curve: MultiplierCurve
            ledger: StatsLedger updated on every resolution
            rng: RNG strategy (auto-cashout targets)
            event_dispatcher: Optional display/event sink
            leaderboard: Optional leaderboard receiving wins
            display_name: Name submitted to the leaderboard
            scheduler: Optional Scheduler for frames and auto-play restarts
            clock: Millisecond clock used when no scheduler is attached
            config: Optional ``autoplay`` config section
        """
        config = config or {}
        self.session_id = session_id
        self.balance_store = balance_store
        self.timing_pool = timing_pool
        self.curve = curve
        self.ledger = ledger
        self.rng = rng
        self.event_dispatcher = event_dispatcher
        self.leaderboard = leaderboard
        self.display_name = display_name
        self.scheduler = scheduler
        self.clock = clock or (lambda: time.time() * 1000.0)

        self.logger = logging.getLogger(f"domain.round.{session_id}")

        self.restart_delay_ms = float(config.get("restart_delay_ms", self.DEFAULT_RESTART_DELAY_MS))
        self.big_win_multiplier = float(config.get("big_win_multiplier", self.BIG_WIN_MULTIPLIER))
        self.autoplay = AutoPlayPolicy(
            min_cashout=float(config.get("min_cashout", 2.0)),
            max_cashout=float(config.get("max_cashout", 8.0))
        )

        self.state = RoundState.IDLE
        self.current_round: Optional[Round] = None
        self.last_bet = 0
        self.round_count = 0
        self.settlements = deque(maxlen=self.HISTORY_SIZE)

        self._frame_handle = None
        self._restart_handle = None

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @property
    def balance(self) -> int:
        return self.balance_store.get_balance()

    @property
    def is_flying(self) -> bool:
        return self.state is RoundState.FLYING

    def start_round(self, bet: int, now: Optional[float] = None) -> Round:
        """
        Place a bet and take off.

        Raises:
            RoundAlreadyActive: if a round is still flying
            InvalidBet: if bet < 1, bet > balance, or bet is not a whole number
        """
        if self.state is not RoundState.IDLE:
            self._status(f"Round is already running (state={self.state.name})", "error")
            raise RoundAlreadyActive(self.state.name)

        balance = self.balance
        if not isinstance(bet, int) or isinstance(bet, bool):
            self._status(f"Bet amount must be a whole number of coins, got {bet!r}", "error")
            raise InvalidBet(bet, balance, f"Bet amount must be a whole number of coins, got {bet!r}")
        if bet < 1 or bet > balance:
            error = InvalidBet(bet, balance)
            self._status(error.message, "error")
            raise error

        self.state = RoundState.BETTING
        try:
            self._guard_store("debit", self.balance_store.debit, bet)
        except ValueError as e:
            # 余额在校验之后被外部修改
            self.state = RoundState.IDLE
            raise InvalidBet(bet, self.balance, str(e)) from e

        duration_ms = self.timing_pool.draw()
        crash_multiplier = self.curve.crash_multiplier_for(duration_ms)

        self.round_count += 1
        self.last_bet = bet
        self.current_round = Round(
            round_number=self.round_count,
            bet=bet,
            crash_duration_ms=duration_ms,
            crash_multiplier=crash_multiplier,
            started_at=self._now(now),
            state=RoundState.FLYING
        )
        self.state = RoundState.FLYING

        self._guard_store("stats", self.ledger.record_round_started)

        self.logger.info(
            f"Round {self.round_count} started - bet: {bet}, crash timing: {duration_ms / 1000:.1f}s, "
            f"target multiplier: {format_multiplier(crash_multiplier)}"
        )
        self._dispatch(RoundEventType.ROUND_STARTED, {
            "bet": bet,
            "balance": self.balance,
            "crash_multiplier": crash_multiplier,
            "crash_duration_ms": duration_ms,
            "started_at": self.current_round.started_at
        })
        self._status("Game started! Plane is taking off... Good luck!", "info")

        self._request_frame()
        return self.current_round

    def tick(self, now: float) -> Optional[Settlement]:
        """
        Advance the flying round to ``now`` (milliseconds).

        Returns:
            The settlement if this tick resolved the round, else None.
            Ticks outside the FLYING state are ignored.
        """
        if self.state is not RoundState.FLYING or self.current_round is None:
            self.logger.debug(f"Ignoring tick in state {self.state.name}")
            return None

        current = self.current_round
        value = self.curve.multiplier_at(current.elapsed_ms(now))
        # 飞行期间倍数不回落
        current.current_multiplier = max(current.current_multiplier, value)
        current.tick_count += 1
        current.last_tick_at = now
        multiplier = current.current_multiplier

        self._dispatch(RoundEventType.MULTIPLIER_UPDATED, {
            "multiplier": multiplier,
            "display": format_multiplier(multiplier),
            "elapsed_ms": current.elapsed_ms(now),
            "potential_win": current.potential_win()
        })

        if self.autoplay.should_cash_out(multiplier):
            self.logger.debug(f"Auto cashout triggered at {format_multiplier(multiplier)}")
            return self.cash_out()

        if multiplier >= current.crash_multiplier:
            return self.crash()

        self._request_frame()
        return None

    def cash_out(self) -> Settlement:
        """
        Lock in the current multiplier.

        Raises:
            NoActiveRound: if no round is flying
        """
        if self.state is not RoundState.FLYING or self.current_round is None:
            self._status("No active game to cash out from!", "error")
            raise NoActiveRound(self.state.name)

        current = self._finish_round()
        multiplier = current.current_multiplier
        winnings = math.floor(current.bet * multiplier)
        profit = winnings - current.bet

        self._guard_store("credit", self.balance_store.credit, winnings)
        self._guard_store("stats", self.ledger.record_win, profit, multiplier)

        settlement = self._settle(current, Outcome.WIN, multiplier, winnings, profit)
        self.logger.info(
            f"Round {current.round_number} cashed out at {format_multiplier(multiplier)} - "
            f"won {winnings} (+{profit}), balance: {settlement.balance_after}"
        )
        self._dispatch(RoundEventType.ROUND_WON, settlement.to_dict())
        self._status(
            f"Cashed out at {format_multiplier(multiplier)}! Won {winnings} coins! (+{profit})", "win"
        )
        if multiplier >= self.big_win_multiplier:
            self._dispatch(RoundEventType.BIG_WIN, settlement.to_dict())

        if self.leaderboard is not None:
            self._guard_store("leaderboard", self.leaderboard.submit_score,
                              self.display_name, settlement.balance_after)

        self._schedule_autoplay_restart()
        return settlement

    def crash(self) -> Settlement:
        """
        End the flying round as a loss. The bet was already debited.

        Raises:
            NoActiveRound: if no round is flying
        """
        if self.state is not RoundState.FLYING or self.current_round is None:
            raise NoActiveRound(self.state.name)

        current = self._finish_round()
        multiplier = current.current_multiplier

        self._guard_store("stats", self.ledger.record_loss, multiplier)

        settlement = self._settle(current, Outcome.CRASH, multiplier, current.bet, -current.bet)
        self.logger.info(
            f"Round {current.round_number} crashed at {format_multiplier(multiplier)} - "
            f"lost {current.bet}, balance: {settlement.balance_after}"
        )
        self._dispatch(RoundEventType.ROUND_CRASHED, settlement.to_dict())
        self._status(
            f"Crash! Lost at {format_multiplier(multiplier)}! Lost {current.bet} coins.", "crash"
        )

        self._schedule_autoplay_restart()
        return settlement

    def toggle_auto_play(self) -> bool:
        """
        Switch auto-play on (drawing a fresh auto-cashout target) or off.

        Returns:
            The new enabled state
        """
        if self.autoplay.enabled:
            self.autoplay.disable()
            self._cancel_restart()
            self.logger.info("Auto play disabled")
            self._dispatch(RoundEventType.AUTOPLAY_DISABLED, {})
            self._status("Auto Play disabled.", "info")
        else:
            target = self.autoplay.enable(self.rng)
            self.logger.info(f"Auto play enabled, auto cashout at {format_multiplier(target)}")
            self._dispatch(RoundEventType.AUTOPLAY_ENABLED, {"auto_cashout_multiplier": target})
            self._status("Auto Play enabled! Next round will start automatically.", "info")
        return self.autoplay.enabled

    def abort(self):
        """
        Drop any flying round without settlement and stop auto-play.

        Used by a session reset; the bet of an aborted round is not refunded.
        """
        if self.state is RoundState.FLYING and self.current_round is not None:
            current = self._finish_round()
            self.logger.info(f"Round {current.round_number} aborted")
        if self.autoplay.enabled:
            self.autoplay.disable()
        self._cancel_restart()
        self.state = RoundState.IDLE
        self.last_bet = 0

    def get_round_data(self) -> Dict[str, Any]:
        """Snapshot for a presentation layer."""
        return {
            "session_id": self.session_id,
            "state": self.state.name,
            "balance": self.balance,
            "round": self.current_round.to_dict() if self.current_round else None,
            "autoplay": {
                "enabled": self.autoplay.enabled,
                "auto_cashout_multiplier": self.autoplay.auto_cashout_multiplier
            },
            "last_bet": self.last_bet,
            "round_count": self.round_count
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _finish_round(self) -> Round:
        # 先取消待执行的帧，保证已结算的回合不会再被 tick
        self._cancel_frame()
        current = self.current_round
        current.state = RoundState.RESOLVED
        self.state = RoundState.IDLE
        return current

    def _settle(self, current: Round, outcome: Outcome, multiplier: float,
                amount: int, profit: int) -> Settlement:
        settlement = Settlement(
            outcome=outcome,
            round_number=current.round_number,
            bet=current.bet,
            multiplier=multiplier,
            amount=amount,
            profit=profit,
            balance_after=self.balance
        )
        current.settlement = settlement
        self.settlements.append(settlement)
        return settlement

    def _now(self, now: Optional[float]) -> float:
        if now is not None:
            return now
        if self.scheduler is not None:
            return self.scheduler.now()
        return self.clock()

    def _request_frame(self):
        if self.scheduler is None or self._frame_handle is not None:
            return
        self._frame_handle = self.scheduler.request_frame(self._on_frame)

    def _on_frame(self, now: float):
        self._frame_handle = None
        self.tick(now)

    def _cancel_frame(self):
        if self._frame_handle is not None:
            self.scheduler.cancel_frame(self._frame_handle)
            self._frame_handle = None

    def _schedule_autoplay_restart(self):
        if not self.autoplay.enabled:
            return
        if self.balance < self.last_bet:
            self.logger.info(f"Auto play paused: balance {self.balance} < bet {self.last_bet}")
            self._status("Auto Play paused: insufficient balance for the next round.", "info")
            return
        if self.scheduler is None:
            self.logger.debug("No scheduler attached, auto play restart left to the caller")
            return
        self._cancel_restart()
        self._restart_handle = self.scheduler.call_later(self.restart_delay_ms, self._autoplay_restart)

    def _autoplay_restart(self):
        self._restart_handle = None
        if not self.autoplay.enabled or self.state is not RoundState.IDLE:
            return
        try:
            self.start_round(self.last_bet)
        except RoundError as e:
            self.logger.warning(f"Auto play restart failed: {e.message}")

    def _cancel_restart(self):
        if self._restart_handle is not None:
            self.scheduler.cancel(self._restart_handle)
            self._restart_handle = None

    def _guard_store(self, operation: str, func, *args):
        """Run a store call; persistence failures become warnings, never errors."""
        try:
            return func(*args)
        except StoreUnavailableError as e:
            self.logger.warning(f"Persistence failed during {operation}: {e.message}")
            self._dispatch(RoundEventType.PERSISTENCE_WARNING, {
                "operation": operation,
                "error": e.message
            })
            return None

    def _status(self, message: str, level: str):
        self._dispatch(RoundEventType.STATUS, {"message": message, "level": level})

    def _dispatch(self, event_type: RoundEventType, data: Dict[str, Any]):
        if not self.event_dispatcher:
            return
        self.event_dispatcher.dispatch(RoundEvent(
            type=event_type,
            session_id=self.session_id,
            round_number=self.current_round.round_number if self.current_round else 0,
            data=dict(data)
        ))
