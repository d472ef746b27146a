# aviator_sim/infrastructure/persistence/balance_store.py
import logging
from typing import Optional, Protocol

from aviator_sim.infrastructure.concurrency.keyed_lock import KeyedLock
from .errors import StoreUnavailableError


DEFAULT_STARTING_BALANCE = 1000


class BalanceStore(Protocol):
    """Holds a player's coin balance (integer, never negative)."""

    def get_balance(self) -> int:
        ...

    def debit(self, amount: int) -> int:
        ...

    def credit(self, amount: int) -> int:
        ...

    def set_balance(self, amount: int) -> int:
        ...


def _check_amount(amount: int):
    if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
        raise ValueError(f"Balance amounts must be non-negative integers, got {amount!r}")


class InMemoryBalanceStore:
    """Balance kept in process memory only."""
    def __init__(self, starting_balance: int = DEFAULT_STARTING_BALANCE):
        _check_amount(starting_balance)
        self._balance = starting_balance

    def get_balance(self) -> int:
        return self._balance

    def debit(self, amount: int) -> int:
        _check_amount(amount)
        if amount > self._balance:
            raise ValueError(f"Cannot debit {amount} from balance {self._balance}")
        self._balance -= amount
        return self._balance

    def credit(self, amount: int) -> int:
        _check_amount(amount)
        self._balance += amount
        return self._balance

    def set_balance(self, amount: int) -> int:
        _check_amount(amount)
        self._balance = amount
        return self._balance


class DocumentBalanceStore(InMemoryBalanceStore):
    """
    Balance mirrored into a document store under ``balances/<user_key>``.

    Memory is authoritative: every mutation is applied locally first and
    then written through. A failed write leaves the store dirty, raises
    StoreUnavailableError, and is retried on the next write or ``flush()``.

    If the stored balance cannot be read at start-up the store plays on the
    starting balance but never writes it over the stored one: every write
    first re-reads the document and rebases the changes made since.
    """
    def __init__(self, document_store, user_key: str,
                 starting_balance: int = DEFAULT_STARTING_BALANCE,
                 locks: Optional[KeyedLock] = None):
        self.logger = logging.getLogger(f"infrastructure.persistence.balance.{user_key}")
        self.document_store = document_store
        self.user_key = user_key
        self.key = f"balances/{user_key}"
        self.locks = locks or KeyedLock()
        self.dirty = False
        self.loaded = False
        self._assumed = starting_balance  # 读取失败时假定的余额

        super().__init__(starting_balance)
        try:
            self._load()
        except StoreUnavailableError as e:
            self.logger.warning(f"Could not load balance for {user_key}, playing on {starting_balance}: {e}")

    def debit(self, amount: int) -> int:
        with self.locks.hold(self.user_key):
            self._try_load()
            balance = super().debit(amount)
            self._persist()
        return balance

    def credit(self, amount: int) -> int:
        with self.locks.hold(self.user_key):
            self._try_load()
            balance = super().credit(amount)
            self._persist()
        return balance

    def set_balance(self, amount: int) -> int:
        with self.locks.hold(self.user_key):
            balance = super().set_balance(amount)
            # 显式设置的余额取代存储中的值
            self.loaded = True
            self._persist()
        return balance

    def flush(self) -> bool:
        """Retry a pending write. Returns True when nothing is left pending."""
        if not self.dirty and self.loaded:
            return True
        with self.locks.hold(self.user_key):
            try:
                self._persist()
            except StoreUnavailableError:
                return False
        return True

    def _load(self):
        document = self.document_store.get(self.key)
        stored = self._assumed
        if document and "coins" in document:
            stored = int(document["coins"])
            self.logger.info(f"Loaded balance {stored} for {self.user_key}")
        # 读取失败期间的输赢叠加到存储的余额上
        self._balance = max(0, stored + self._balance - self._assumed)
        self.loaded = True

    def _try_load(self):
        if self.loaded:
            return
        try:
            self._load()
        except StoreUnavailableError as e:
            self.logger.warning(f"Balance for {self.user_key} still unreadable: {e}")

    def _persist(self):
        try:
            if not self.loaded:
                self._load()
            self.document_store.put(self.key, {"user": self.user_key, "coins": self._balance})
        except StoreUnavailableError:
            self.dirty = True
            raise
        if self.dirty:
            self.logger.info(f"Pending balance write for {self.user_key} flushed")
        self.dirty = False
