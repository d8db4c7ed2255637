import logging
import threading
from typing import Any, Callable

log = logging.getLogger("playsync.event_bus")


def _callback_name(callback: Callable) -> str:
    return getattr(callback, "__qualname__", None) or repr(callback)


class EventBus:
    """Thread-safe publish/subscribe event system.

    Decouples media element events from the sync session, and carries
    announcements between same-process peers.
    """

    def __init__(self):
        self._subscribers: dict[str, list[Callable]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, callback: Callable) -> None:
        with self._lock:
            if event_type not in self._subscribers:
                self._subscribers[event_type] = []
            self._subscribers[event_type].append(callback)
            log.debug("Subscribed to '%s': %s", event_type, _callback_name(callback))

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        # Bound methods compare equal but are never identical across lookups
        with self._lock:
            if event_type in self._subscribers:
                remaining = [cb for cb in self._subscribers[event_type] if cb != callback]
                if remaining:
                    self._subscribers[event_type] = remaining
                else:
                    del self._subscribers[event_type]

    def subscriber_count(self, event_type: str) -> int:
        with self._lock:
            return len(self._subscribers.get(event_type, []))

    def publish(self, event_type: str, data: Any = None) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(event_type, []))

        for callback in callbacks:
            try:
                callback(data)
            except Exception:
                log.exception(
                    "Error in event handler for '%s': %s",
                    event_type,
                    _callback_name(callback),
                )
