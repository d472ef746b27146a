# aviator_sim/domain/events/event_types.py
import time
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, Any


@dataclass
class DomainEvent:
    """Base of everything passed through an EventDispatcher."""
    type: Enum
    data: Dict[str, Any] = field(default_factory=dict)
    occurred_at: float = field(default_factory=time.time)  # 墙钟时间，不是虚拟时间

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.type.name})"
