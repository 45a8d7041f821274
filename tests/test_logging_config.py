"""
test_logging_config.py — Tests for inventory_sync/logging_config.py

Verifies Loguru setup, stdlib logging interception, JSON mode and
request context binding. Uses loguru's sink capture for assertions.

Called by: pytest
Depends on: inventory_sync/logging_config.py
"""

import logging
import os
from unittest.mock import patch

import pytest
from loguru import logger

from inventory_sync.config import settings
from inventory_sync.logging_config import QUIET_LOGGERS, setup_logging


@pytest.fixture(autouse=True)
def _clean_loguru():
    """Remove all handlers before/after each test for isolation."""
    logger.remove()
    yield
    logger.remove()


def test_setup_logging_adds_handler():
    assert len(logger._core.handlers) == 0
    setup_logging()
    assert len(logger._core.handlers) > 0


def test_repeat_setup_keeps_one_sink():
    setup_logging()
    setup_logging()
    assert len(logger._core.handlers) == 1


def test_stdlib_logging_intercepted():
    """After setup, logging.getLogger(__name__) messages go through Loguru."""
    setup_logging()

    # Add test sink AFTER setup (setup calls logger.remove() internally)
    messages = []
    logger.add(lambda m: messages.append(str(m)), format="{message}")

    logging.getLogger("inventory_sync.services.test").warning("intercepted message")

    assert any("intercepted message" in m for m in messages)


def test_noisy_libraries_held_at_warning():
    setup_logging()
    assert {"httpx", "httpcore", "sqlalchemy.engine"} <= set(QUIET_LOGGERS)
    for name in QUIET_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING


def test_log_level_from_env():
    """LOG_LEVEL env var overrides the configured level."""
    with patch.dict(os.environ, {"LOG_LEVEL": "warning"}):
        with patch("loguru.logger.add") as mock_add:
            setup_logging()
    assert mock_add.call_args_list[0].kwargs["level"] == "WARNING"


def test_json_mode_uses_serialize():
    with patch.object(settings, "log_json", True):
        with patch("loguru.logger.add") as mock_add:
            setup_logging()
    serialize_calls = [c for c in mock_add.call_args_list if c.kwargs.get("serialize") is True]
    assert len(serialize_calls) == 1


def test_text_mode_is_colorized():
    with patch.object(settings, "log_json", False):
        with patch("loguru.logger.add") as mock_add:
            setup_logging()
    assert mock_add.call_args_list[0].kwargs.get("colorize") is True
    assert not mock_add.call_args_list[0].kwargs.get("serialize")


def test_context_binding():
    """logger.contextualize() adds fields to log records."""
    records = []
    logger.add(lambda m: records.append(m.record), format="{message}")

    with logger.contextualize(request_id="abc123"):
        logger.info("request log")

    assert records[-1]["extra"].get("request_id") == "abc123"


def test_context_not_leaked():
    records = []
    logger.add(lambda m: records.append(m.record), format="{message}")

    with logger.contextualize(request_id="abc123"):
        logger.info("inside")
    logger.info("outside")

    assert "request_id" not in records[-1]["extra"]
