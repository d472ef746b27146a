# aviator_sim/application/simulation/session_runner.py
import logging
import time
from typing import Dict, Any

from aviator_sim.domain.events.round_events import SETTLEMENT_EVENT_TYPES
from aviator_sim.domain.round.errors import RoundError
from aviator_sim.domain.round.entities.round import RoundState
from aviator_sim.infrastructure.scheduling.scheduler import VirtualScheduler


class SessionRunner:
    """
    无界面地运行一个游戏会话：开启自动游戏，直到达到回合上限、
    余额不足以继续下注，或虚拟时间耗尽。
    """
    DEFAULT_MAX_VIRTUAL_TIME_MS = 10 * 60 * 60 * 1000  # 10 小时虚拟时间

    def __init__(self, session, config: Dict[str, Any] = None):
        """
        Args:
            session: GameSession 实例
            config: ``simulation`` 配置段（rounds, bet, frame_interval_ms, max_virtual_time_ms）
        """
        self.logger = logging.getLogger(f"application.simulation.runner.{session.id}")
        self.session = session

        self.config = config or {}
        self.max_rounds = int(self.config.get("rounds", 100))
        self.bet = int(self.config.get("bet", 50))
        self.max_virtual_time_ms = float(
            self.config.get("max_virtual_time_ms", self.DEFAULT_MAX_VIRTUAL_TIME_MS)
        )

        self.scheduler = self._attach_scheduler()
        self.rounds_settled = 0
        self.initial_balance = None
        # 本次运行的结算；会话历史只保留最近的回合，且持久化账本跨运行累计
        self.settlements = []
        self.end_reason = None

    def _attach_scheduler(self):
        machine = self.session.machine
        if machine.scheduler is None:
            frame_interval = self.config.get("frame_interval_ms", VirtualScheduler.DEFAULT_FRAME_INTERVAL_MS)
            scheduler = VirtualScheduler(frame_interval_ms=float(frame_interval))
            machine.scheduler = scheduler
            self.session.scheduler = scheduler
        return machine.scheduler

    def run(self) -> Dict[str, Any]:
        """
        运行会话直到结束。

        Returns:
            包含会话统计和结算历史的字典
        """
        machine = self.session.machine
        dispatcher = self.session.event_dispatcher
        wall_start = time.time()
        self.initial_balance = self.session.balance
        virtual_start = self.scheduler.now()

        self.logger.info(
            f"Starting session {self.session.id}: up to {self.max_rounds} rounds, "
            f"bet {self.bet}, balance {self.session.balance}"
        )

        if dispatcher is not None:
            dispatcher.register_many(SETTLEMENT_EVENT_TYPES, self._on_settlement)

        try:
            if not machine.autoplay.enabled:
                self.session.toggle_auto_play()

            try:
                self.session.start_round(self.bet)
            except RoundError as e:
                self.logger.warning(f"Could not start first round: {e.message}")
                self.end_reason = "insufficient_balance"
                self.session.toggle_auto_play()
            else:
                self.scheduler.run(until_ms=virtual_start + self.max_virtual_time_ms)
                self._finish(virtual_start)
        finally:
            if dispatcher is not None:
                for event_type in SETTLEMENT_EVENT_TYPES:
                    dispatcher.unregister(event_type, self._on_settlement)

        self.session.flush()
        wall_duration = time.time() - wall_start
        virtual_duration = self.scheduler.now() - virtual_start
        self.logger.info(
            f"Session completed - rounds: {self.rounds_settled}, reason: {self.end_reason}, "
            f"balance: {self.session.balance}, virtual time: {virtual_duration / 1000:.1f}s"
        )

        return {
            "session_id": self.session.id,
            "display_name": self.session.display_name,
            "rounds_played": self.rounds_settled,
            "end_reason": self.end_reason,
            "bet": self.bet,
            "initial_balance": self.initial_balance,
            "final_balance": self.session.balance,
            "virtual_duration_ms": virtual_duration,
            "wall_duration": wall_duration,
            "statistics": self.session.get_statistics(),
            "run_statistics": self.run_statistics(),
            "settlements": list(self.settlements)
        }

    def _finish(self, virtual_start: float):
        machine = self.session.machine
        if self.end_reason is not None:
            return

        if machine.state is RoundState.FLYING:
            # 虚拟时间耗尽：关闭自动游戏，让当前回合自然结束
            self.end_reason = "time_limit"
            if machine.autoplay.enabled:
                self.session.toggle_auto_play()
            self.scheduler.run()
        elif self.session.balance < self.bet:
            self.end_reason = "insufficient_balance"
        elif self.scheduler.now() - virtual_start >= self.max_virtual_time_ms:
            self.end_reason = "time_limit"
        else:
            self.end_reason = "stopped"

        if machine.autoplay.enabled:
            self.session.toggle_auto_play()

    def run_statistics(self) -> Dict[str, Any]:
        """
        Counters of this run only, derived from its settlements.

        ``statistics`` in the result is the session ledger, which a document
        store carries over from earlier runs of the same player.
        """
        wins = [s for s in self.settlements if s["type"] == "win"]
        rounds = len(self.settlements)
        return {
            "rounds": rounds,
            "wins": len(wins),
            "win_rate": len(wins) / rounds if rounds > 0 else 0.0,
            # 与账本一致：坠毁不计入 profit
            "profit": sum(s["profit"] for s in wins),
            "total_bet": sum(s["bet"] for s in self.settlements),
            "total_returned": sum(s["amount"] for s in wins),
            "highest_multiplier": max((s["multiplier"] for s in self.settlements), default=1.0)
        }

    def _on_settlement(self, event):
        self.settlements.append({k: v for k, v in event.data.items() if k != "session_id"})
        self.rounds_settled += 1
        if self.rounds_settled >= self.max_rounds and self.end_reason is None:
            self.end_reason = "round_limit"
            # 在自动重启调度之前关闭自动游戏
            if self.session.machine.autoplay.enabled:
                self.session.toggle_auto_play()
