"""OSC/UDP announcement transport.

Publishing sends one OSC message per configured peer:

    /room/video/<room_id>  "<JSON wire body>"

A background ThreadingOSCUDPServer listens for the same messages from
peers and delivers them to the room's subscribers. Delivery is whatever
UDP gives us: unordered, possibly lost, possibly duplicated. When the
local listen address is also listed as a peer, every publish is echoed
back to us, which the sync session discards by origin id.

NOTE: python-osc's Dispatcher.map() without extra args calls
callback(address, *osc_values); _get_osc_value() also copes with the
extra_args list form.
"""

import logging
import re
import threading

from pythonosc.dispatcher import Dispatcher
from pythonosc.osc_server import ThreadingOSCUDPServer
from pythonosc.udp_client import SimpleUDPClient

from playback.announcement import PlaybackAnnouncement, encode
from transport.base import AnnouncementHandler, Subscription, Transport, TransportError

log = logging.getLogger("playsync.transport.osc")

ROOM_VIDEO_PREFIX = "/room/video/"
# Room id is everything after the prefix, up to the next slash
_ROOM_RE = re.compile(r"^/room/video/([^/\s]+)$")


def room_address(room_id: str) -> str:
    if not room_id or "/" in room_id or any(ch.isspace() for ch in room_id):
        raise ValueError(f"Room id not usable in an OSC address: {room_id!r}")
    return f"{ROOM_VIDEO_PREFIX}{room_id}"


class OSCTransport(Transport):
    """Fans announcements out to peers over UDP and listens for theirs."""

    name = "osc"

    def __init__(self, peers: list[tuple[str, int]] = None,
                 listen_ip: str = "0.0.0.0", listen_port: int = 9100):
        super().__init__()
        self.peers = list(peers or [])
        self.listen_ip = listen_ip
        self.listen_port = listen_port
        self._clients: list[SimpleUDPClient] = []
        self._server: ThreadingOSCUDPServer | None = None
        self._thread: threading.Thread | None = None
        self._unmatched = 0

    @property
    def bound_port(self) -> int:
        """Actual listening port (differs from listen_port when that is 0)."""
        if self._server is None:
            return self.listen_port
        return self._server.server_address[1]

    def connect(self) -> None:
        """Open peer clients and start the feedback server thread."""
        if self._connected:
            return
        dispatcher = Dispatcher()
        dispatcher.map(ROOM_VIDEO_PREFIX + "*", self._on_room_video)
        dispatcher.set_default_handler(self._on_unknown)

        try:
            self._server = ThreadingOSCUDPServer(
                (self.listen_ip, self.listen_port), dispatcher
            )
        except OSError as e:
            raise TransportError(
                f"Cannot listen on {self.listen_ip}:{self.listen_port}: {e}"
            ) from e

        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="osc-transport",
            daemon=True,
        )
        self._thread.start()

        self._clients = [SimpleUDPClient(host, port) for host, port in self.peers]
        self._connected = True
        log.info("OSC transport listening on %s:%d, %d peer(s): %s",
                 self.listen_ip, self.bound_port, len(self.peers),
                 ", ".join(f"{h}:{p}" for h, p in self.peers) or "-")

    def close(self) -> None:
        self._connected = False
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            log.info("OSC transport stopped")
        if self._thread:
            self._thread.join(timeout=1.0)
            self._thread = None
        self._clients = []

    def subscribe(self, room_id: str, handler: AnnouncementHandler) -> Subscription:
        # Fails early for rooms that could never be addressed
        room_address(room_id)
        return super().subscribe(room_id, handler)

    def publish(self, room_id: str, announcement: PlaybackAnnouncement) -> None:
        try:
            address = room_address(room_id)
        except ValueError as e:
            raise TransportError(str(e)) from e
        self._ensure_connected()
        body = encode(announcement)
        log.debug("OSC SEND: %s %s", address, body)

        failures = 0
        for (host, port), client in zip(self.peers, self._clients):
            try:
                client.send_message(address, body)
            except OSError as e:
                failures += 1
                log.warning("OSC send to %s:%d failed: %s", host, port, e)
        if self._clients and failures == len(self._clients):
            raise TransportError(f"OSC send failed for all {failures} peer(s)")

    # --- Inbound ---

    def _on_room_video(self, address: str, *args) -> None:
        m = _ROOM_RE.match(address)
        body = self._get_osc_value(args)
        if m is None or body is None:
            log.warning("Ignoring OSC message %s with args %s", address, args)
            return
        self._deliver(m.group(1), body)

    def _on_unknown(self, address: str, *args) -> None:
        self._unmatched += 1
        if self._unmatched <= 5:
            log.info("OSC received (unmatched): %s %s", address, args)
        elif self._unmatched == 6:
            log.info("(suppressing further unmatched OSC logs)")

    @staticmethod
    def _get_osc_value(args):
        """Extract the first OSC value from args, skipping an extra_args list."""
        if not args:
            return None
        if isinstance(args[0], list):
            return args[1] if len(args) > 1 else None
        return args[0]
