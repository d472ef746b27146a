# aviator_sim/domain/events/event_dispatcher.py
import logging
from collections import defaultdict
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from .event_types import DomainEvent

Handler = Callable[[DomainEvent], None]


class EventDispatcher:
    """
    Display/event sink of a game session.

    Displays, loggers and runners subscribe here instead of being called by
    the round engine. A failing handler is logged and skipped; it never
    reaches the state machine that dispatched the event.
    """
    def __init__(self):
        self.logger = logging.getLogger("domain.events.dispatcher")
        self._handlers: Dict[Optional[Enum], List[Handler]] = defaultdict(list)  # None 表示接收所有事件

    def register(self, event_type: Enum, handler: Handler):
        self._handlers[event_type].append(handler)
        self.logger.debug(f"Registered handler for {event_type.name}")

    def register_many(self, event_types: Iterable[Enum], handler: Handler):
        for event_type in event_types:
            self.register(event_type, handler)

    def register_all(self, handler: Handler):
        """Receive every dispatched event."""
        self._handlers[None].append(handler)

    def unregister(self, event_type: Enum, handler: Handler) -> bool:
        """Returns False when the handler was not registered for ``event_type``."""
        return self._remove(event_type, handler)

    def unregister_all(self, handler: Handler) -> bool:
        return self._remove(None, handler)

    def handler_count(self, event_type: Optional[Enum] = None) -> int:
        """Handlers an event of ``event_type`` would reach (global ones only when None)."""
        count = len(self._handlers.get(None, ()))
        if event_type is not None:
            count += len(self._handlers.get(event_type, ()))
        return count

    def dispatch(self, event: DomainEvent):
        # 复制列表：处理器可能在分发过程中注销自己
        handlers = list(self._handlers.get(event.type, ())) + list(self._handlers.get(None, ()))
        if not handlers:
            return

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                self.logger.error(f"Handler {getattr(handler, '__name__', handler)!s} failed on {event}: {e}")

    def _remove(self, key: Optional[Enum], handler: Handler) -> bool:
        handlers = self._handlers.get(key)
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        return True
