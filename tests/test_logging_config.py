import logging

import pytest
import structlog

from txsequencer.logging_config import setup_logging, transaction_context


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def test_json_logging_by_default(restore_root_logger):
    """Non-debug runs log JSON at the configured level."""

    setup_logging(log_level="WARNING", debug=False)

    root = restore_root_logger
    assert root.level == logging.WARNING
    assert len(root.handlers) == 1
    formatter = root.handlers[0].formatter
    assert isinstance(formatter, structlog.stdlib.ProcessorFormatter)
    assert isinstance(formatter.processors[-1], structlog.processors.JSONRenderer)


def test_debug_uses_console_renderer(restore_root_logger):
    """Debug runs log human-readable output at DEBUG."""

    setup_logging(debug=True)

    root = restore_root_logger
    assert root.level == logging.DEBUG
    formatter = root.handlers[0].formatter
    assert isinstance(formatter.processors[-1], structlog.dev.ConsoleRenderer)


def test_http_client_loggers_quieted(restore_root_logger):
    """HTTP client internals stay at WARNING."""

    setup_logging(log_level="DEBUG", debug=False)

    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("httpcore").level == logging.WARNING


def test_transaction_context_binds_and_unbinds():
    """The transaction id is bound only inside the block."""

    with transaction_context("tx_abc", attempt=2):
        assert structlog.contextvars.get_contextvars() == {"tx_id": "tx_abc", "attempt": 2}

    assert "tx_id" not in structlog.contextvars.get_contextvars()


def test_stdlib_records_carry_transaction_context(restore_root_logger, capsys):
    """Plain logging calls inside the block are rendered with the id."""

    setup_logging(log_level="INFO", debug=False)

    with transaction_context("tx_abc"):
        logging.getLogger("txsequencer.test").info("sending")

    line = capsys.readouterr().out.strip().splitlines()[-1]
    assert '"tx_id": "tx_abc"' in line
    assert '"event": "sending"' in line
