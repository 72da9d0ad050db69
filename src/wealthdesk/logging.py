"""structlog setup shared by the gateway, the provider chains and the sync engine.

Context is carried in structlog.contextvars, so values bound by one
background push task never leak into a concurrent request handler.
"""

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

# Libraries that log every request or statement at INFO/DEBUG
_NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "ccxt")


def setup_logging(log_level: str = "INFO", log_format: str | None = None) -> None:
    """Route structlog through stdlib logging with one root handler.

    Args:
        log_level: Root level name ("DEBUG", "INFO", ...).
        log_format: "json" or "console". Falls back to the LOG_FORMAT
            environment variable, then to "console".
    """
    log_format = (log_format or os.environ.get("LOG_FORMAT", "console")).lower()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """Bind values to every log event emitted inside the block (this task only)."""
    with structlog.contextvars.bound_contextvars(**values):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
