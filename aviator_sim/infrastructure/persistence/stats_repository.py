# aviator_sim/infrastructure/persistence/stats_repository.py
import logging
from typing import Dict, Any, Optional

from .errors import StoreUnavailableError


class StatsRepository:
    """Persists a session's StatsLedger record under ``stats/<user_key>``."""
    def __init__(self, document_store, user_key: str):
        self.logger = logging.getLogger("infrastructure.persistence.stats")
        self.document_store = document_store
        self.user_key = user_key
        self.key = f"stats/{user_key}"

    def load(self) -> Optional[Dict[str, Any]]:
        try:
            return self.document_store.get(self.key)
        except StoreUnavailableError as e:
            # 读取失败时从空统计开始
            self.logger.warning(f"Could not load stats for {self.user_key}: {e}")
            return None

    def save(self, record: Dict[str, Any]) -> None:
        self.document_store.put(self.key, record)
