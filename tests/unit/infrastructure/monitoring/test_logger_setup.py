import logging
import logging.handlers
import sys

import pytest

from restpipe.infrastructure.monitoring.logger_setup import resolve_log_level, setup_logging


@pytest.fixture
def root_logger():
    """Restores the root logger (including pytest's own handlers) after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_console_handler_writes_to_stderr(root_logger):
    setup_logging("debug")

    [handler] = root_logger.handlers
    assert handler.stream is sys.stderr
    assert root_logger.level == logging.DEBUG


def test_log_file_adds_rotating_handler(root_logger, tmp_path):
    log_file = tmp_path / "restpipe.log"

    setup_logging(logging.INFO, log_file=str(log_file))

    assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in root_logger.handlers)
    assert log_file.exists()


@pytest.mark.parametrize("value, expected", [
    ("warning", logging.WARNING),
    (logging.ERROR, logging.ERROR),
    (None, logging.INFO),
    ("nonsense", logging.INFO),
])
def test_resolve_log_level(value, expected):
    assert resolve_log_level(value) == expected
