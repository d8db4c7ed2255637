#!/usr/bin/env python3
"""playsync: shared playback daemon, main entry point.

Runs an asyncio event loop that:
  1. Starts the OSC transport (peer clients + feedback server)
  2. Attaches a SyncSession for the configured room
  3. Ticks the local media element at tick_hz
  4. Reads playback commands from stdin: play, pause, seek <s>, status, quit
"""

import asyncio
import signal
import sys
import os
import logging
import threading

# Add src/ to path so imports work when running directly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import load_config
from core.logging_config import setup_logging
from core.event_bus import EventBus
from playback.media import ClockMedia
from playback.session import SyncSession, SYNC_ANNOUNCE_FAILED
from transport.base import TransportError
from transport.osc import OSCTransport

log = logging.getLogger("playsync.main")

HELP = "commands: play | pause | seek <seconds> | status | quit"


class SyncDaemon:
    """Main application daemon."""

    def __init__(self, config: dict, transport=None):
        self.config = config
        self.event_bus = EventBus()
        self._running = False

        sync_cfg = config.get("sync", {})
        media_cfg = config.get("media", {})
        osc_cfg = config.get("osc", {})
        self._tick_hz = max(1, media_cfg.get("tick_hz", 4))

        self.media = ClockMedia(self.event_bus, duration=media_cfg.get("duration"))

        self.transport = transport or OSCTransport(
            peers=osc_cfg.get("peers", []),
            listen_ip=osc_cfg.get("listen_ip", "0.0.0.0"),
            listen_port=osc_cfg.get("listen_port", 9100),
        )

        self.session = SyncSession(
            room_id=sync_cfg.get("room", "lobby"),
            origin_id=sync_cfg["user"],
            media=self.media,
            transport=self.transport,
            event_bus=self.event_bus,
            settle_delay=sync_cfg.get("settle_delay_ms", 100) / 1000.0,
        )

        self.event_bus.subscribe(SYNC_ANNOUNCE_FAILED, self._on_announce_failed)

    # --- Commands ---

    def handle_command(self, line: str) -> None:
        """Apply one stdin command to the local media element."""
        parts = line.strip().split()
        if not parts:
            return
        cmd, args = parts[0].lower(), parts[1:]

        if cmd == "play":
            self.media.play()
        elif cmd == "pause":
            self.media.pause()
        elif cmd == "seek":
            if len(args) != 1:
                log.warning("usage: seek <seconds>")
                return
            try:
                position = float(args[0])
            except ValueError:
                log.warning("Not a position: %s", args[0])
                return
            self.media.seek(position)
        elif cmd == "status":
            self.log_status()
        elif cmd in ("quit", "exit"):
            self._running = False
        else:
            log.info(HELP)

    def log_status(self) -> None:
        log.info("Room '%s' | %s at %.2fs | state=%s | announced=%d applied=%d",
                 self.session.room_id,
                 "paused" if self.media.paused else "playing",
                 self.media.position,
                 self.session.state.value,
                 self.session.announced_count,
                 self.session.applied_count)

    def _on_announce_failed(self, data: dict) -> None:
        log.error("Failed to sync playback (%s); peers may be out of step", data["error"])

    def _start_stdin_reader(self, loop: asyncio.AbstractEventLoop) -> None:
        def read_lines():
            for line in sys.stdin:
                loop.call_soon_threadsafe(self.handle_command, line)
            # EOF on stdin: keep running until a signal arrives

        thread = threading.Thread(target=read_lines, name="stdin-commands", daemon=True)
        thread.start()

    # --- Main loop ---

    async def run(self) -> None:
        """Main event loop."""
        try:
            self.transport.connect()
        except TransportError:
            log.exception("Could not start transport")
            return

        try:
            self.session.attach()
        except ValueError as e:
            log.error("Cannot join room: %s", e)
            self.shutdown()
            return
        self._running = True
        self._start_stdin_reader(asyncio.get_running_loop())

        tick_interval = 1.0 / self._tick_hz
        log.info("Ready! %s", HELP)

        try:
            while self._running:
                try:
                    self.media.tick()
                except Exception:
                    log.exception("Media tick error")
                await asyncio.sleep(tick_interval)
        except asyncio.CancelledError:
            log.info("Main loop cancelled")
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        """Clean shutdown."""
        self._running = False
        log.info("Shutting down...")
        self.session.close()
        self.transport.close()
        log.info("Shutdown complete")


def main() -> None:
    setup_logging()
    log.info("=== playsync ===")

    config = load_config()
    daemon = SyncDaemon(config)

    loop = asyncio.new_event_loop()

    def signal_handler():
        log.info("Signal received, stopping...")
        daemon._running = False

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        loop.run_until_complete(daemon.run())
    finally:
        loop.close()


if __name__ == "__main__":
    main()
