"""
Unit tests for logging setup.
"""

import logging
from pathlib import Path

import pytest

from tollgate.log import LOGGER_NAME, configure_logging


@pytest.fixture
def clean_logger():
    """Restore the tollgate logger after a test."""
    logger = logging.getLogger(LOGGER_NAME)
    handlers = list(logger.handlers)
    level = logger.level
    configured = getattr(logger, "_tollgate_configured", False)
    yield logger
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers = handlers
    logger.setLevel(level)
    setattr(logger, "_tollgate_configured", configured)


class TestConfigureLogging:
    def test_file_handler(self, clean_logger: logging.Logger, temp_dir: Path) -> None:
        setattr(clean_logger, "_tollgate_configured", False)
        log_path = temp_dir / "logs" / "tollgate.log"

        configure_logging(logging.DEBUG, log_path=log_path, also_console=False)
        logging.getLogger("tollgate.policy.engine").warning("rule skipped")
        for handler in clean_logger.handlers:
            handler.flush()

        text = log_path.read_text()
        assert "WARNING tollgate.policy.engine: rule skipped" in text

    def test_idempotent(self, clean_logger: logging.Logger) -> None:
        setattr(clean_logger, "_tollgate_configured", False)
        configure_logging(logging.INFO)
        count = len(clean_logger.handlers)

        configure_logging(logging.DEBUG)
        assert len(clean_logger.handlers) == count
        assert clean_logger.level == logging.DEBUG
