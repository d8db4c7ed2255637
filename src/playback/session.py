"""Playback sync session.

Keeps one local media element converged with the peers of a room.

Local play/pause/seek events become announcements; announcements from
peers become a single corrective action on the local media. Applying a
correction makes the media element fire the very events that would
normally be announced, so the session tracks an explicit state:

    IDLE            waiting; local events announce, remote ones apply
    LOCAL_INTENT    momentarily, while one local announcement is built
                    and published; a remote one arriving meanwhile
                    still applies
    APPLYING_REMOTE a correction was applied and the settle delay has not
                    expired; local events are swallowed

An announcement that arrives while APPLYING_REMOTE is parked (only the
newest one is kept) and applied as soon as the settle delay expires.
There are no sequence numbers: whatever is delivered last wins, even if
it was sent earlier.
"""

from __future__ import annotations

import enum
import logging
import threading
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from core.scheduler import TimerScheduler
from playback.announcement import PlaybackAnnouncement, truncate_ms, utcnow
from playback.media import MEDIA_PAUSE, MEDIA_PLAY, MEDIA_SEEKED
from transport.base import TransportError

if TYPE_CHECKING:
    from core.event_bus import EventBus
    from playback.media import MediaElement
    from transport.base import Subscription, Transport

log = logging.getLogger("playsync.playback.session")

DEFAULT_SETTLE_DELAY = 0.1  # seconds

SYNC_STATE_CHANGED = "sync_state_changed"
SYNC_ANNOUNCE_FAILED = "sync_announce_failed"


class SyncState(enum.Enum):
    IDLE = "idle"
    LOCAL_INTENT = "local_intent"
    APPLYING_REMOTE = "applying_remote"


class SyncSession:
    """One client's view of one room's shared playback timeline."""

    def __init__(self, room_id: str, origin_id: str,
                 media: MediaElement, transport: Transport,
                 event_bus: EventBus | None = None,
                 scheduler=None,
                 clock: Callable[[], datetime] = utcnow,
                 settle_delay: float = DEFAULT_SETTLE_DELAY):
        if scheduler is None:
            scheduler = TimerScheduler(name=f"settle-{room_id}")

        self.room_id = room_id
        self.origin_id = origin_id
        self.media = media
        self.transport = transport
        self.event_bus = event_bus
        self.scheduler = scheduler
        self.clock = clock
        self.settle_delay = settle_delay

        self.last_known_playing = False
        self.last_known_position = 0.0

        # Re-entrant: media callbacks fire synchronously inside _apply()
        self._lock = threading.RLock()
        self._state = SyncState.IDLE
        self._pending: PlaybackAnnouncement | None = None
        self._settle_handle = None
        self._intents = 0
        self._subscription: Subscription | None = None
        self._attached = False
        self._closed = False

        self.announced_count = 0
        self.applied_count = 0
        self.suppressed_count = 0

    @property
    def state(self) -> SyncState:
        with self._lock:
            return self._state

    @property
    def pending(self) -> PlaybackAnnouncement | None:
        with self._lock:
            return self._pending

    @property
    def closed(self) -> bool:
        return self._closed

    # --- Lifecycle ---

    def attach(self) -> None:
        """Subscribe to the room and start listening to media events."""
        with self._lock:
            if self._closed:
                raise RuntimeError("SyncSession is closed")
            if self._attached:
                return
            self._subscription = self.transport.subscribe(self.room_id, self.receive)
            if self.event_bus:
                self.event_bus.subscribe(MEDIA_PLAY, self._on_media_play)
                self.event_bus.subscribe(MEDIA_PAUSE, self._on_media_pause)
                self.event_bus.subscribe(MEDIA_SEEKED, self._on_media_seeked)
            self._attached = True
        log.info("Attached to room '%s' as '%s'", self.room_id, self.origin_id)

    def close(self) -> None:
        """Tear down: cancel settle wait, unsubscribe, then release the media."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._settle_handle is not None:
                self._settle_handle.cancel()
                self._settle_handle = None
            self._pending = None
            if self._subscription is not None:
                self._subscription.cancel()
                self._subscription = None
            if self.event_bus and self._attached:
                self.event_bus.unsubscribe(MEDIA_PLAY, self._on_media_play)
                self.event_bus.unsubscribe(MEDIA_PAUSE, self._on_media_pause)
                self.event_bus.unsubscribe(MEDIA_SEEKED, self._on_media_seeked)
            self._attached = False
            self._state = SyncState.IDLE
        self.media.release()
        log.info("Left room '%s' (announced=%d, applied=%d, suppressed=%d)",
                 self.room_id, self.announced_count, self.applied_count,
                 self.suppressed_count)

    # --- Local intent ---

    def local_play(self) -> PlaybackAnnouncement | None:
        return self._announce(True, "play")

    def local_pause(self) -> PlaybackAnnouncement | None:
        return self._announce(False, "pause")

    def local_seek(self) -> PlaybackAnnouncement | None:
        return self._announce(not self.media.paused, "seek")

    def _announce(self, playing: bool, trigger: str) -> PlaybackAnnouncement | None:
        """Publish one announcement for a local intent.

        Returns the announcement, or None when suppressed. Raises
        TransportError if publishing fails; local media is left as is.
        """
        with self._lock:
            if self._closed:
                return None
            if self._state is SyncState.APPLYING_REMOTE:
                self.suppressed_count += 1
                log.debug("Suppressed local %s while applying remote state", trigger)
                return None

            position = self.media.position
            announcement = PlaybackAnnouncement(
                playing=playing,
                position=position,
                sender_time=truncate_ms(self.clock()),
                origin_id=self.origin_id,
            )
            self.last_known_playing = playing
            self.last_known_position = position
            self._intents += 1
            self._set_state(SyncState.LOCAL_INTENT)

        # Published without the lock: in-process peers deliver synchronously
        # and take their own session locks
        try:
            self.transport.publish(self.room_id, announcement)
        finally:
            with self._lock:
                self._intents -= 1
                # A remote correction may have taken over meanwhile
                if self._intents == 0 and self._state is SyncState.LOCAL_INTENT:
                    self._set_state(SyncState.IDLE)

        with self._lock:
            self.announced_count += 1
        log.info("→ Announced %s (playing=%s) at %.3fs", trigger, playing, position)
        return announcement

    def _announce_from_event(self, playing: bool, trigger: str) -> None:
        try:
            self._announce(playing, trigger)
        except TransportError as e:
            # Local playback stands; peers simply do not learn of it
            log.warning("Could not announce local %s: %s", trigger, e)
            if self.event_bus:
                self.event_bus.publish(SYNC_ANNOUNCE_FAILED, {
                    "error": str(e),
                    "playing": playing,
                    "position": self.media.position,
                })

    def _on_media_play(self, data: dict) -> None:
        self._announce_from_event(True, "play")

    def _on_media_pause(self, data: dict) -> None:
        self._announce_from_event(False, "pause")

    def _on_media_seeked(self, data: dict) -> None:
        self._announce_from_event(not self.media.paused, "seek")

    # --- Remote state ---

    def receive(self, announcement: PlaybackAnnouncement) -> None:
        """Handle an announcement delivered by the transport (any thread)."""
        if announcement.origin_id == self.origin_id:
            log.debug("Dropped self echo at %.3fs", announcement.position)
            return

        with self._lock:
            if self._closed:
                return
            if self._state is SyncState.APPLYING_REMOTE:
                if self._pending is not None:
                    log.debug("Replacing pending announcement from '%s'",
                              self._pending.origin_id)
                self._pending = announcement
                return
            self._apply(announcement)

    def target_position(self, announcement: PlaybackAnnouncement) -> float:
        """Where the sender's timeline should be now, never before zero."""
        elapsed = announcement.elapsed_since_sent(self.clock())
        return max(0.0, announcement.position + elapsed)

    def _apply(self, announcement: PlaybackAnnouncement) -> None:
        # Caller holds self._lock
        self._set_state(SyncState.APPLYING_REMOTE)
        target = self.target_position(announcement)

        try:
            # Media events fired from here re-enter this thread and are swallowed
            self.media.seek(target)
            if announcement.playing and self.media.paused:
                self.media.play()
            elif not announcement.playing and not self.media.paused:
                self.media.pause()
        except Exception:
            log.exception("Failed to apply state from '%s' at %.3fs",
                          announcement.origin_id, target)
        else:
            self.last_known_playing = announcement.playing
            self.last_known_position = target
            self.applied_count += 1
            log.info("← Synced to '%s': %s at %.3fs (sent at %.3fs)",
                     announcement.origin_id,
                     "playing" if announcement.playing else "paused",
                     target, announcement.position)
        finally:
            # Always leave APPLYING_REMOTE through the settle path
            self._settle_handle = self.scheduler.call_later(self.settle_delay, self._settle)

    def _settle(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._settle_handle = None
            pending, self._pending = self._pending, None
            if pending is not None:
                self._apply(pending)
            else:
                self._set_state(SyncState.IDLE)

    def _set_state(self, new_state: SyncState) -> None:
        if new_state is self._state:
            return
        old_state, self._state = self._state, new_state
        log.debug("State %s → %s", old_state.value, new_state.value)
        if self.event_bus:
            self.event_bus.publish(SYNC_STATE_CHANGED, {
                "room": self.room_id,
                "old": old_state,
                "new": new_state,
            })
