"""
Structured logging for the CLI.

Log events go to stderr, either as JSON lines or as colored console
output, so stdout stays reserved for command results.
"""

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from structlog.types import Processor

from trove_keeper.config import get_settings


def _renderer(fmt: str) -> "Processor":
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stderr.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def setup_logging() -> None:
    """Configure structlog and the stdlib root logger from LOG_LEVEL and LOG_FORMAT."""
    settings = get_settings()
    level = logging.getLevelName(settings.logging.level)

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            _renderer(settings.logging.format),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # httpx logs through the stdlib
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """
    Get a logger, optionally bound to initial context.

    Example:
        >>> logger = get_logger(__name__, component="cache")
        >>> logger.info("Cached entry", url="https://example.com")
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger
