"""In-process transport over the shared EventBus.

Peers living in one process (tests, local demos) exchange the same JSON
wire bodies a network peer would see, so the codec is always exercised.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from playback.announcement import PlaybackAnnouncement, encode
from transport.base import Transport

if TYPE_CHECKING:
    from core.event_bus import EventBus

log = logging.getLogger("playsync.transport.bus")


def room_topic(room_id: str) -> str:
    return f"room_video:{room_id}"


class BusTransport(Transport):
    """Relays announcements through an EventBus topic per room."""

    name = "bus"

    def __init__(self, event_bus: EventBus):
        super().__init__()
        self.event_bus = event_bus
        self._bus_callbacks: dict[str, Callable] = {}

    def publish(self, room_id: str, announcement: PlaybackAnnouncement) -> None:
        self._ensure_connected()
        body = encode(announcement)
        log.debug("BUS SEND: %s %s", room_topic(room_id), body)
        self.event_bus.publish(room_topic(room_id), body)

    def close(self) -> None:
        super().close()
        for room_id in list(self._bus_callbacks):
            self._unwatch_room(room_id)

    def _watch_room(self, room_id: str) -> None:
        def on_body(body, room_id=room_id):
            self._deliver(room_id, body)

        self._bus_callbacks[room_id] = on_body
        self.event_bus.subscribe(room_topic(room_id), on_body)

    def _unwatch_room(self, room_id: str) -> None:
        callback = self._bus_callbacks.pop(room_id, None)
        if callback is not None:
            self.event_bus.unsubscribe(room_topic(room_id), callback)
