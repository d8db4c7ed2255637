"""Local media element.

The sync session only needs a small capability set from whatever renders
the media: play, pause, seek, read the position, and a stream of events
for play-started, paused and seeked. Events are published on the shared
EventBus so the session (and anything else, e.g. a status display) can
listen without the element knowing who is interested.

Event names and payloads:

    media_play        {"position": float}
    media_pause       {"position": float}
    media_seeked      {"position": float}
    media_timeupdate  {"position": float}
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from core.event_bus import EventBus

log = logging.getLogger("playsync.playback.media")

MEDIA_PLAY = "media_play"
MEDIA_PAUSE = "media_pause"
MEDIA_SEEKED = "media_seeked"
MEDIA_TIMEUPDATE = "media_timeupdate"


class MediaElement:
    """Base class for a locally rendered media element."""

    def __init__(self, event_bus: EventBus | None = None):
        self.event_bus = event_bus
        self.released = False

    @property
    def position(self) -> float:
        """Current position in seconds."""
        return 0.0

    @property
    def paused(self) -> bool:
        return True

    def play(self) -> None:
        """Start playback. Publishes media_play if the element was paused."""

    def pause(self) -> None:
        """Pause playback. Publishes media_pause if the element was playing."""

    def seek(self, position: float) -> None:
        """Jump to `position` seconds. Always publishes media_seeked."""

    def release(self) -> None:
        """Free the underlying resource. The element is unusable afterwards."""
        self.released = True

    def _emit(self, event_type: str, position: float) -> None:
        if self.event_bus:
            self.event_bus.publish(event_type, {"position": position})


class ClockMedia(MediaElement):
    """Media element whose timeline is driven by a monotonic clock.

    Stands in for a real decoder: position advances in real time while
    playing and freezes while paused. Like a browser media element it fires
    its events synchronously from inside play()/pause()/seek().
    """

    def __init__(self, event_bus: EventBus | None = None,
                 duration: float | None = None,
                 clock: Callable[[], float] = time.monotonic):
        super().__init__(event_bus)
        self.duration = duration
        self._clock = clock
        self._lock = threading.Lock()
        self._playing = False
        self._anchor_position = 0.0
        self._anchor_time = clock()

    def _position_locked(self) -> float:
        position = self._anchor_position
        if self._playing:
            position += self._clock() - self._anchor_time
        if self.duration is not None:
            position = min(position, self.duration)
        return max(0.0, position)

    def _reanchor_locked(self, position: float) -> None:
        self._anchor_position = position
        self._anchor_time = self._clock()

    @property
    def position(self) -> float:
        with self._lock:
            return self._position_locked()

    @property
    def paused(self) -> bool:
        with self._lock:
            return not self._playing

    @property
    def ended(self) -> bool:
        with self._lock:
            return self.duration is not None and self._position_locked() >= self.duration

    def play(self) -> None:
        with self._lock:
            if self.released:
                log.warning("play() on released media element ignored")
                return
            if self._playing:
                return
            self._reanchor_locked(self._position_locked())
            self._playing = True
            position = self._anchor_position
        log.debug("Media play at %.3f", position)
        self._emit(MEDIA_PLAY, position)

    def pause(self) -> None:
        with self._lock:
            if self.released:
                log.warning("pause() on released media element ignored")
                return
            if not self._playing:
                return
            self._reanchor_locked(self._position_locked())
            self._playing = False
            position = self._anchor_position
        log.debug("Media pause at %.3f", position)
        self._emit(MEDIA_PAUSE, position)

    def seek(self, position: float) -> None:
        with self._lock:
            if self.released:
                log.warning("seek() on released media element ignored")
                return
            position = max(0.0, float(position))
            if self.duration is not None:
                position = min(position, self.duration)
            self._reanchor_locked(position)
        log.debug("Media seeked to %.3f", position)
        self._emit(MEDIA_SEEKED, position)

    def tick(self) -> None:
        """Publish a periodic media_timeupdate; pauses at the end of media."""
        if self.released:
            return
        if self.ended and not self.paused:
            self.pause()
        self._emit(MEDIA_TIMEUPDATE, self.position)

    def release(self) -> None:
        with self._lock:
            if self._playing:
                self._reanchor_locked(self._position_locked())
                self._playing = False
            self.released = True
        log.debug("Media element released")
