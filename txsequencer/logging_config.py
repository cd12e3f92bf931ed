"""
Structured logging for the transaction queue, built on structlog.

Library modules log through the standard ``logging`` module. Once
``setup_logging`` has run, those records are rendered by structlog and pick
up any context bound with ``transaction_context`` (the executor binds the
transaction id for the duration of each attempt).
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator, List, Optional

import structlog

from .config import QueueSettings, settings as default_settings


QUIET_LOGGERS = ("httpcore", "httpx")


def _pre_chain() -> List[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def setup_logging(
    log_level: Optional[str] = None,
    debug: Optional[bool] = None,
    settings: Optional[QueueSettings] = None,
) -> None:
    """Route all logging through structlog.

    Args:
        log_level: Level name; defaults to settings.log_level
        debug: Console output at DEBUG; defaults to settings.debug
        settings: Settings to read defaults from
    """
    settings = settings or default_settings
    if debug is None:
        debug = settings.debug
    level = logging.DEBUG if debug else getattr(
        logging, (log_level or settings.log_level).upper(), logging.INFO
    )

    if level == logging.DEBUG:
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer()
        tail: List[structlog.types.Processor] = [structlog.processors.StackInfoRenderer()]
    else:
        renderer = structlog.processors.JSONRenderer()
        tail = [structlog.processors.format_exc_info, structlog.processors.UnicodeDecoder()]

    structlog.configure(
        processors=[
            *_pre_chain(),
            *tail,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[*_pre_chain(), *tail],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def transaction_context(tx_id: str, **extra) -> Iterator[None]:
    """Bind a transaction id to every log line emitted inside the block."""
    with structlog.contextvars.bound_contextvars(tx_id=tx_id, **extra):
        yield
