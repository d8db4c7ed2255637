"""
Pytest configuration and fixtures for playsync tests.

Provides a controllable wall clock, a manually fired scheduler, a
recording transport and ready-wired sessions so the sync state machine
can be driven step by step without sleeping.
"""

import pytest
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add src/ to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from core.event_bus import EventBus  # noqa: E402
from playback.announcement import PlaybackAnnouncement  # noqa: E402
from playback.media import ClockMedia  # noqa: E402
from playback.session import SyncSession  # noqa: E402
from transport.base import Transport  # noqa: E402


# ==================== PYTEST CONFIGURATION ====================

def pytest_configure(config):
    """Add custom markers for test categorization."""
    config.addinivalue_line("markers", "unit: unit test (fast, no I/O)")
    config.addinivalue_line("markers", "integration: integration test (several components, may use sockets)")


# ==================== FAKES ====================

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


class FakeMonotonic:
    """Monotonic seconds counter for ClockMedia."""

    def __init__(self):
        self.value = 1000.0

    def __call__(self):
        return self.value

    def advance(self, seconds):
        self.value += seconds


class FakeHandle:
    def __init__(self, scheduler, delay, callback):
        self.scheduler = scheduler
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True
        self.scheduler.log.append("cancel")


class FakeScheduler:
    """Collects deferred calls; tests decide when they run."""

    def __init__(self):
        self.handles = []
        self.log = []

    def call_later(self, delay, callback):
        handle = FakeHandle(self, delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def waiting(self):
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def fire_next(self):
        handle = self.waiting[0]
        handle.fired = True
        handle.callback()
        return handle

    def fire_all(self):
        while self.waiting:
            self.fire_next()


class RecordingTransport(Transport):
    """Transport that keeps everything published instead of sending it."""

    name = "recording"

    def __init__(self, connected=True):
        super().__init__()
        self._connected = connected
        self.published = []
        self.log = []

    def publish(self, room_id, announcement):
        self._ensure_connected()
        self.published.append((room_id, announcement))

    def _watch_room(self, room_id):
        self.log.append(("watch", room_id))

    def _unwatch_room(self, room_id):
        self.log.append(("unwatch", room_id))

    @property
    def announcements(self):
        return [a for _, a in self.published]


def make_announcement(playing=True, position=0.0, sender_time=T0, origin_id="peer-a"):
    return PlaybackAnnouncement(playing, position, sender_time, origin_id)


# ==================== FIXTURES ====================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def monotonic():
    return FakeMonotonic()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def media(event_bus, monotonic):
    return ClockMedia(event_bus, clock=monotonic)


@pytest.fixture
def session(media, transport, event_bus, scheduler, clock):
    """Attached session for room 'r1' as 'me', driven by fakes."""
    s = SyncSession(
        room_id="r1",
        origin_id="me",
        media=media,
        transport=transport,
        event_bus=event_bus,
        scheduler=scheduler,
        clock=clock,
    )
    s.attach()
    yield s
    s.close()
