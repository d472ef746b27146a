# aviator_sim/domain/session/factories/session_factory.py
import logging
import uuid
from typing import Dict, Any, Optional

from aviator_sim.domain.events.event_dispatcher import EventDispatcher
from aviator_sim.domain.round.entities.crash_timing_pool import CrashTimingPool
from aviator_sim.domain.round.entities.multiplier_curve import MultiplierCurve
from aviator_sim.domain.round.entities.round_state_machine import RoundStateMachine
from aviator_sim.infrastructure.concurrency.keyed_lock import KeyedLock
from aviator_sim.infrastructure.persistence.balance_store import (
    InMemoryBalanceStore, DocumentBalanceStore, DEFAULT_STARTING_BALANCE
)
from aviator_sim.infrastructure.persistence.stats_repository import StatsRepository
from ..entities.game_session import GameSession
from ..entities.stats_ledger import StatsLedger


class SessionFactory:
    """
    Factory for creating isolated GameSession instances.

    Every session gets its own RNG, timing pool, curve, state machine,
    ledger and (unless one is passed in) event dispatcher. Only the document
    store and the leaderboard are shared, and writes to them are serialized
    per user key.
    """
    def __init__(self, rng_provider, document_store=None, leaderboard=None,
                 locks: Optional[KeyedLock] = None):
        """
        Args:
            rng_provider: RNGProvider creating per-session strategies
            document_store: Optional store for balances and stats; memory only if None
            leaderboard: Optional shared Leaderboard
            locks: Per-user locks shared with the leaderboard
        """
        self.logger = logging.getLogger("domain.session.factory")
        self.rng_provider = rng_provider
        self.document_store = document_store
        self.leaderboard = leaderboard
        self.locks = locks or KeyedLock()

    def create_session(self, config: Optional[Dict[str, Any]] = None,
                       session_id: Optional[str] = None,
                       display_name: Optional[str] = None,
                       user_key: Optional[str] = None,
                       scheduler=None,
                       event_dispatcher: Optional[EventDispatcher] = None,
                       seed_offset: int = 0) -> GameSession:
        """
        Build a session from the game configuration.

        Args:
            config: Full game config (``session``, ``rng``, ``crash_timing``,
                ``multiplier``, ``autoplay`` sections are read)
            session_id: Optional session ID (generated if not provided)
            display_name: Leaderboard name, defaults to ``session.display_name``
            user_key: Key of the balance and stats documents, defaults to
                ``session.user_key`` and then to the session ID
            scheduler: Optional Scheduler driving frames and auto-play
            event_dispatcher: Optional sink; a private one is created if None
            seed_offset: Offset applied to a configured RNG seed

        Returns:
            Initialized GameSession instance
        """
        config = config or {}
        session_config = config.get("session", {})

        if not session_id:
            session_id = f"session_{uuid.uuid4().hex[:8]}"
        display_name = display_name or session_config.get("display_name", "Anonymous")
        user_key = user_key or session_config.get("user_key") or session_id
        starting_balance = int(session_config.get("starting_balance", DEFAULT_STARTING_BALANCE))

        self.logger.info(f"Creating session {session_id} for {display_name}")

        event_dispatcher = event_dispatcher or EventDispatcher()
        rng = self.rng_provider.for_session(config.get("rng", {}), seed_offset=seed_offset)

        # 每个会话只生成一次时间池
        timing_pool = CrashTimingPool(rng, config.get("crash_timing", {}))
        timing_pool.generate()
        curve = MultiplierCurve(rng, config.get("multiplier", {}))

        if self.document_store is not None:
            balance_store = DocumentBalanceStore(
                self.document_store, user_key, starting_balance, locks=self.locks
            )
            ledger = StatsLedger.load(StatsRepository(self.document_store, user_key))
        else:
            balance_store = InMemoryBalanceStore(starting_balance)
            ledger = StatsLedger()

        machine = RoundStateMachine(
            session_id=session_id,
            balance_store=balance_store,
            timing_pool=timing_pool,
            curve=curve,
            ledger=ledger,
            rng=rng,
            event_dispatcher=event_dispatcher,
            leaderboard=self.leaderboard,
            display_name=display_name,
            scheduler=scheduler,
            config=config.get("autoplay", {})
        )

        return GameSession(
            session_id=session_id,
            machine=machine,
            ledger=ledger,
            balance_store=balance_store,
            leaderboard=self.leaderboard,
            event_dispatcher=event_dispatcher,
            scheduler=scheduler,
            display_name=display_name,
            starting_balance=starting_balance
        )
