"""
Renderer notifications.

The supervisor announces state transitions (STARTING, READY, UNAVAILABLE,
STOPPED) and the protocol client announces each finished or failed render.
Applications subscribe instead of polling RendererSupervisor.get_health().
"""
import itertools
import threading
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from plotpipe.core.events.event_types import Event
from plotpipe.core.logging.logger import get_logger

logger = get_logger('plotpipe.events')

Handler = Callable[[Event], None]


class EventSystem:
    """
    Thread-safe subscriber registry with a bounded history.

    Handlers run on the publishing thread, which for renderer events is the
    thread holding the supervisor or send lock, so they must return quickly
    and must not render. A raising handler is logged and skipped.
    """

    def __init__(self, max_history: int = 200):
        self._handlers: Dict[str, List[Tuple[int, Handler]]] = {}
        self._history: Deque[Event] = deque(maxlen=max_history)
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, callback: Handler) -> int:
        """Register *callback* for *event_type*; returns an id for unsubscribe()."""
        if not callable(callback):
            raise ValueError("Callback must be callable")
        _check_type(event_type)
        with self._lock:
            sub_id = next(self._ids)
            self._handlers.setdefault(event_type, []).append((sub_id, callback))
        logger.debug("Subscription %d for %s", sub_id, event_type)
        return sub_id

    def unsubscribe(self, sub_id: int) -> bool:
        """Remove a subscription; returns False when the id is unknown."""
        with self._lock:
            for event_type, handlers in self._handlers.items():
                remaining = [(i, cb) for i, cb in handlers if i != sub_id]
                if len(remaining) != len(handlers):
                    if remaining:
                        self._handlers[event_type] = remaining
                    else:
                        del self._handlers[event_type]
                    return True
        logger.debug("Unsubscribe called with unknown id %s", sub_id)
        return False

    def publish(self, event_type: str, data: Optional[Dict[str, Any]] = None, source: Any = None) -> Event:
        """Deliver an event to the current subscribers in subscription order."""
        _check_type(event_type)
        event = Event(event_type, dict(data or {}), source)
        with self._lock:
            handlers = list(self._handlers.get(event_type, ()))
            self._history.append(event)

        for sub_id, callback in handlers:
            try:
                callback(event)
            except Exception as e:
                logger.error("Handler %d for %s raised: %s", sub_id, event_type, e, exc_info=True)
        return event

    def get_event_history(self, limit: int = 100) -> List[Event]:
        """Most recent events, oldest first."""
        with self._lock:
            return list(self._history)[-limit:]

    def get_subscription_count(self) -> int:
        with self._lock:
            return sum(len(h) for h in self._handlers.values())

    def clear(self) -> None:
        """Drop every subscription and the history."""
        with self._lock:
            self._handlers.clear()
            self._history.clear()


def _check_type(event_type: object) -> None:
    if not isinstance(event_type, str) or not event_type.strip():
        raise ValueError("event_type must be a non-empty string")
