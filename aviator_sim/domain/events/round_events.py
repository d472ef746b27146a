# aviator_sim/domain/events/round_events.py
from enum import Enum, auto
from dataclasses import dataclass

from .event_types import DomainEvent


class RoundEventType(Enum):
    """Event types emitted by a game session and its rounds."""
    ROUND_STARTED = auto()
    MULTIPLIER_UPDATED = auto()
    ROUND_WON = auto()
    ROUND_CRASHED = auto()
    BIG_WIN = auto()                  # 兑现倍数 >= 5x
    AUTOPLAY_ENABLED = auto()
    AUTOPLAY_DISABLED = auto()
    STATUS = auto()
    PERSISTENCE_WARNING = auto()      # 外部存储失败，不影响游戏
    SESSION_RESET = auto()


# Settlement events carry {type, multiplier, amount} for the display sink
SETTLEMENT_EVENT_TYPES = (RoundEventType.ROUND_WON, RoundEventType.ROUND_CRASHED)


@dataclass
class RoundEvent(DomainEvent):
    """Event representing something that happened during a round or session."""
    session_id: str = ""
    round_number: int = 0

    def __post_init__(self):
        # 显示层只看 data，所以把会话和回合编号也放进去
        self.data["session_id"] = self.session_id
        self.data["round_number"] = self.round_number

    @property
    def is_settlement(self) -> bool:
        return self.type in SETTLEMENT_EVENT_TYPES
