"""Playback announcements and their JSON wire format.

An announcement is one peer's playback intent at a point in time.
On the wire every field is a string so that browser peers using the
same room topic can read it:

    {"state": "true", "timestamp": "42.0",
     "senderTime": "2024-05-01T12:00:00.000Z", "userUUID": "alice"}
"""

import json
import math
from datetime import datetime, timezone

_REQUIRED_FIELDS = ("state", "timestamp", "senderTime", "userUUID")


class AnnouncementError(ValueError):
    """Raised when an inbound body cannot be turned into an announcement."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def truncate_ms(moment: datetime) -> datetime:
    """Drop sub-millisecond precision (the wire carries milliseconds)."""
    return moment.replace(microsecond=(moment.microsecond // 1000) * 1000)


class PlaybackAnnouncement:
    """A single peer's play/pause/position intent."""

    __slots__ = ("playing", "position", "sender_time", "origin_id")

    def __init__(self, playing: bool, position: float,
                 sender_time: datetime, origin_id: str):
        self.playing = bool(playing)
        self.position = float(position)
        # Naive datetimes are treated as UTC
        if sender_time.tzinfo is None:
            sender_time = sender_time.replace(tzinfo=timezone.utc)
        self.sender_time = sender_time
        self.origin_id = origin_id

    def __eq__(self, other) -> bool:
        if not isinstance(other, PlaybackAnnouncement):
            return NotImplemented
        return (self.playing == other.playing
                and self.position == other.position
                and self.sender_time == other.sender_time
                and self.origin_id == other.origin_id)

    def __repr__(self) -> str:
        return (f"PlaybackAnnouncement(playing={self.playing}, "
                f"position={self.position:.3f}, "
                f"sender_time={format_instant(self.sender_time)}, "
                f"origin_id={self.origin_id!r})")

    def elapsed_since_sent(self, now: datetime) -> float:
        """Seconds between sending and `now`, never negative."""
        return max(0.0, (now - self.sender_time).total_seconds())


# --- Wire encoding ---

def format_instant(moment: datetime) -> str:
    """Format as `YYYY-MM-DDTHH:MM:SS.mmmZ` (JavaScript toISOString)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def parse_instant(text: str) -> datetime:
    """Parse an ISO-8601 instant. `Z` and numeric offsets are accepted."""
    if not isinstance(text, str) or not text:
        raise AnnouncementError(f"senderTime must be a non-empty string, got {text!r}")
    value = text.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(value)
    except ValueError as e:
        raise AnnouncementError(f"Unparseable senderTime {text!r}") from e
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def to_wire(announcement: PlaybackAnnouncement) -> dict:
    return {
        "state": "true" if announcement.playing else "false",
        "timestamp": repr(announcement.position),
        "senderTime": format_instant(announcement.sender_time),
        "userUUID": announcement.origin_id,
    }


def encode(announcement: PlaybackAnnouncement) -> str:
    """Serialize an announcement to its JSON wire body."""
    return json.dumps(to_wire(announcement))


def from_wire(data: dict) -> PlaybackAnnouncement:
    if not isinstance(data, dict):
        raise AnnouncementError(f"Announcement must be a JSON object, got {type(data).__name__}")

    missing = [name for name in _REQUIRED_FIELDS if name not in data]
    if missing:
        raise AnnouncementError(f"Announcement missing field(s): {', '.join(missing)}")

    state = data["state"]
    # Browser peers compare against the literal string "true"
    if isinstance(state, bool):
        playing = state
    else:
        playing = state == "true"

    raw_position = data["timestamp"]
    if isinstance(raw_position, bool):
        raise AnnouncementError("timestamp must be numeric, got a boolean")
    try:
        position = float(raw_position)
    except (TypeError, ValueError) as e:
        raise AnnouncementError(f"timestamp is not numeric: {raw_position!r}") from e
    if not math.isfinite(position):
        raise AnnouncementError(f"timestamp is not finite: {raw_position!r}")

    sender_time = parse_instant(data["senderTime"])

    origin_id = data["userUUID"]
    if not isinstance(origin_id, str) or not origin_id:
        raise AnnouncementError(f"userUUID must be a non-empty string, got {origin_id!r}")

    return PlaybackAnnouncement(playing, position, sender_time, origin_id)


def decode(body) -> PlaybackAnnouncement:
    """Parse a JSON wire body (str or bytes) into an announcement."""
    if isinstance(body, (bytes, bytearray)):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise AnnouncementError("Announcement body is not valid UTF-8") from e
    if not isinstance(body, str):
        raise AnnouncementError(f"Announcement body must be text, got {type(body).__name__}")
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise AnnouncementError(f"Announcement body is not JSON: {e}") from e
    return from_wire(data)
