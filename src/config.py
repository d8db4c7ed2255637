import os
import logging
import uuid
from pathlib import Path

import yaml
from dotenv import load_dotenv

log = logging.getLogger("playsync.config")

# Project root is one level up from src/
PROJECT_ROOT = Path(__file__).resolve().parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"

DEFAULT_PEERS = ["127.0.0.1:9100"]


def parse_peers(value) -> list[tuple[str, int]]:
    """Parse peers given as "host:port,host:port" or a list of such strings."""
    if value is None:
        return []
    if isinstance(value, str):
        entries = [part.strip() for part in value.split(",")]
    else:
        entries = [str(part).strip() for part in value]

    peers = []
    for entry in entries:
        if not entry:
            continue
        host, sep, port = entry.rpartition(":")
        if not sep or not host:
            raise ValueError(f"Peer must be host:port, got {entry!r}")
        try:
            port_num = int(port)
        except ValueError:
            raise ValueError(f"Peer port is not a number: {entry!r}") from None
        if not 0 < port_num < 65536:
            raise ValueError(f"Peer port out of range: {entry!r}")
        peers.append((host, port_num))
    return peers


def load_config(config_path: str = None) -> dict:
    """Load configuration from YAML file with .env overrides."""
    load_dotenv(PROJECT_ROOT / ".env")

    yaml_path = Path(config_path) if config_path else CONFIG_DIR / "default_sync.yaml"
    if not yaml_path.exists():
        log.warning("Config file not found: %s, using defaults", yaml_path)
        config = {}
    else:
        with open(yaml_path) as f:
            config = yaml.safe_load(f) or {}

    # Environment variable overrides
    sync = config.setdefault("sync", {})
    sync["room"] = os.environ.get("SYNC_ROOM", sync.get("room") or "lobby")
    sync["user"] = os.environ.get("SYNC_USER", sync.get("user") or uuid.uuid4().hex)
    sync["settle_delay_ms"] = int(os.environ.get(
        "SYNC_SETTLE_MS", sync.get("settle_delay_ms", 100)))

    osc = config.setdefault("osc", {})
    osc["listen_ip"] = os.environ.get("LISTEN_IP", osc.get("listen_ip", "0.0.0.0"))
    osc["listen_port"] = int(os.environ.get("LISTEN_PORT", osc.get("listen_port", 9100)))
    osc["peers"] = parse_peers(os.environ.get("SYNC_PEERS", osc.get("peers", DEFAULT_PEERS)))

    media = config.setdefault("media", {})
    media["tick_hz"] = int(os.environ.get("MEDIA_TICK_HZ", media.get("tick_hz", 4)))
    if media.get("duration") is not None:
        media["duration"] = float(media["duration"])
    else:
        media["duration"] = None

    log.info(
        "Config loaded: room '%s' as '%s', listen on :%d, %d peer(s), settle %d ms",
        sync["room"],
        sync["user"],
        osc["listen_port"],
        len(osc["peers"]),
        sync["settle_delay_ms"],
    )
    return config
