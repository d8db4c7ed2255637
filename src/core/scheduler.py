"""Deferred, cancellable actions.

The sync session never blocks while waiting out its settle delay; it asks
a scheduler to call it back later and keeps the returned handle so the
wait can be cancelled on teardown.
"""

import logging
import threading
from typing import Callable

log = logging.getLogger("playsync.core.scheduler")


class TimerScheduler:
    """Runs each deferred call on its own daemon `threading.Timer`."""

    def __init__(self, name: str = "settle"):
        self.name = name
        self._count = 0

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        """Run `callback` after `delay` seconds. Returns a handle with `cancel()`."""
        self._count += 1
        timer = threading.Timer(max(0.0, delay), self._run, args=(callback,))
        timer.name = f"{self.name}-timer-{self._count}"
        timer.daemon = True
        timer.start()
        return timer

    @staticmethod
    def _run(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            log.exception("Deferred call failed: %s", getattr(callback, "__qualname__", callback))
