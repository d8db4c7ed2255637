import logging
import sys
import os


def setup_logging(level: str = None) -> logging.Logger:
    """Configure logging for the playsync daemon."""
    log_level = level or os.environ.get("LOG_LEVEL", "INFO")
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    # Configure our namespace logger
    root = logging.getLogger("playsync")
    root.setLevel(numeric_level)
    # Calling setup_logging twice must not double every line
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.propagate = False  # prevent duplicate output via root logger

    logging.basicConfig(level=logging.WARNING)

    # Quiet noisy libraries
    for name in ("pythonosc", "asyncio"):
        logging.getLogger(name).setLevel(logging.WARNING)

    return root
