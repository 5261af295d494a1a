"""Structured logging for aumos-audit-trail.

Every module obtains its logger with get_logger(__name__) and logs
key/value event fields. configure_logging() is called once at startup.
"""

import logging
import sys
from typing import Any, cast

import structlog


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Configure structlog processors and output.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: "json" for production, "console" for local development.
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]

    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    level_num = logging.getLevelName(level.upper())
    if not isinstance(level_num, int):
        level_num = logging.INFO

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to the given module name.

    Args:
        name: Logger name, usually __name__.

    Returns:
        A bound structlog logger.
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
