"""Best-effort publish/subscribe of playback announcements.

A transport only relays: no buffering, retry, ordering or deduplication.
Subclasses implement `publish()` and, when they need per-room wiring,
the `_watch_room()`/`_unwatch_room()` hooks. Handler bookkeeping and
delivery of raw wire bodies live here.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from playback.announcement import AnnouncementError, PlaybackAnnouncement, decode

log = logging.getLogger("playsync.transport")

AnnouncementHandler = Callable[[PlaybackAnnouncement], None]


class TransportError(Exception):
    """The channel is not established or a send failed."""


class Subscription:
    """Handle returned by `Transport.subscribe()`."""

    def __init__(self, transport: Transport, room_id: str, handler: AnnouncementHandler):
        self.transport = transport
        self.room_id = room_id
        self.handler = handler
        self.active = True

    def cancel(self) -> None:
        """Stop future deliveries. Safe to call more than once."""
        if not self.active:
            return
        self.active = False
        self.transport._remove(self)


class Transport:
    """Base class for announcement transports."""

    name = "base"

    def __init__(self):
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._lock = threading.Lock()
        self._connected = False
        self._dropped = 0

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def dropped_count(self) -> int:
        """Inbound bodies dropped as malformed."""
        return self._dropped

    def connect(self) -> None:
        self._connected = True

    def close(self) -> None:
        self._connected = False

    def publish(self, room_id: str, announcement: PlaybackAnnouncement) -> None:
        raise NotImplementedError

    def subscribe(self, room_id: str, handler: AnnouncementHandler) -> Subscription:
        """Invoke `handler` once per announcement delivered for `room_id`."""
        sub = Subscription(self, room_id, handler)
        with self._lock:
            subs = self._subscriptions.setdefault(room_id, [])
            first = not subs
            subs.append(sub)
        if first:
            self._watch_room(room_id)
        log.debug("[%s] subscribed to room '%s'", self.name, room_id)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscriptions.get(sub.room_id, [])
            if sub in subs:
                subs.remove(sub)
            last = sub.room_id in self._subscriptions and not subs
            if last:
                del self._subscriptions[sub.room_id]
        if last:
            self._unwatch_room(sub.room_id)
        log.debug("[%s] unsubscribed from room '%s'", self.name, sub.room_id)

    def _ensure_connected(self) -> None:
        if not self._connected:
            raise TransportError(f"{self.name} transport is not connected")

    def _watch_room(self, room_id: str) -> None:
        """Called when the first handler for `room_id` is registered."""

    def _unwatch_room(self, room_id: str) -> None:
        """Called when the last handler for `room_id` is cancelled."""

    def _deliver(self, room_id: str, body) -> None:
        """Decode a wire body and hand it to every live handler of the room."""
        try:
            announcement = decode(body)
        except AnnouncementError as e:
            with self._lock:
                self._dropped += 1
            log.warning("[%s] dropping malformed announcement for room '%s': %s",
                        self.name, room_id, e)
            return

        with self._lock:
            subs = list(self._subscriptions.get(room_id, []))

        for sub in subs:
            # cancel() may land between the copy above and this call
            if not sub.active:
                continue
            try:
                sub.handler(announcement)
            except Exception:
                log.exception("[%s] error in announcement handler for room '%s'",
                              self.name, room_id)
