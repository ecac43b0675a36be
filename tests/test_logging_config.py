"""
test_logging_config.py — Tests for stacktracker/logging_config.py

Verifies Loguru setup, stdlib logging interception, level filtering, and
the production JSON/file sinks. Uses loguru's sink capture for assertions.

Called by: pytest
Depends on: stacktracker/logging_config.py
"""

import logging
import os
from unittest.mock import patch

import pytest
from loguru import logger

from stacktracker.logging_config import setup_logging


@pytest.fixture(autouse=True)
def _clean_loguru():
    """Remove all handlers before/after each test for isolation."""
    logger.remove()
    yield
    logger.remove()


def test_setup_logging_adds_handler():
    assert len(logger._core.handlers) == 0
    with patch.dict(os.environ, {"APP_URL": "http://localhost:8000"}):
        setup_logging()
    assert len(logger._core.handlers) > 0


def test_service_logger_intercepted():
    """stdlib getLogger(__name__) in services/connectors routes through Loguru."""
    with patch.dict(os.environ, {"APP_URL": "http://localhost:8000"}):
        setup_logging()

    messages = []
    logger.add(lambda m: messages.append(str(m)), format="{message}")

    logging.getLogger("stacktracker.services.connectwise_sync").warning(
        "Failed to fetch contact for company Acme"
    )

    assert any("Failed to fetch contact for company Acme" in m for m in messages)


def test_log_level_from_env():
    with patch.dict(os.environ, {"APP_URL": "http://localhost:8000", "LOG_LEVEL": "WARNING"}):
        setup_logging()

    messages = []
    logger.add(lambda m: messages.append(str(m)), level="WARNING", format="{message}")

    logger.debug("should be filtered")
    logger.warning("should appear")

    assert any("should appear" in m for m in messages)
    assert not any("should be filtered" in m for m in messages)


def test_noisy_loggers_quieted():
    with patch.dict(os.environ, {"APP_URL": "http://localhost:8000"}):
        setup_logging()
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_production_mode_uses_serialize():
    """An https, non-localhost APP_URL switches to JSON sinks."""
    with patch.dict(os.environ, {"APP_URL": "https://stack.coretech.example", "LOG_FILE": "/tmp/st.log"}):
        with patch("loguru.logger.add") as mock_add:
            setup_logging()
    serialize_calls = [c for c in mock_add.call_args_list if c.kwargs.get("serialize") is True]
    assert len(serialize_calls) == 2
    assert any(c.args and c.args[0] == "/tmp/st.log" for c in serialize_calls)


def test_localhost_https_is_not_production():
    with patch.dict(os.environ, {"APP_URL": "https://localhost:8443"}):
        with patch("loguru.logger.add") as mock_add:
            setup_logging()
    assert not any(c.kwargs.get("serialize") for c in mock_add.call_args_list)
