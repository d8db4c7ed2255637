"""
Unit tests for daemon logging setup.
"""

import logging

import pytest

from core.logging_config import setup_logging


@pytest.fixture(autouse=True)
def restore_playsync_logger(monkeypatch):
    logger = logging.getLogger("playsync")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    yield
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


@pytest.mark.unit
class TestSetupLogging:

    def test_repeated_setup_keeps_one_handler(self):
        setup_logging()
        logger = setup_logging()

        assert logger.name == "playsync"
        assert len(logger.handlers) == 1
        assert logger.propagate is False

    def test_level_from_argument(self):
        assert setup_logging("debug").level == logging.DEBUG

    def test_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        assert setup_logging().level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self):
        assert setup_logging("chatty").level == logging.INFO

    def test_osc_library_quieted(self):
        setup_logging("debug")
        assert logging.getLogger("pythonosc").level == logging.WARNING
