"""Structured logging configuration using structlog.

Log entries go to stderr so that command output on stdout stays
machine-readable. Identifiers of the message being routed are bound
through context variables and merged into every entry written while
it is routed, including those of the cache, store and executor.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, ContextManager

import structlog

SERVICE_NAME = "message-router"


def _add_service(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _level_number(level: str) -> int:
    number = logging.getLevelName(level.upper())
    if not isinstance(number, int):
        raise ValueError(f"Unknown log level: {level}")
    return number


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, one JSON object per line; otherwise console output

    Raises:
        ValueError: If the level name is unknown
    """
    level_number = _level_number(level)

    # Libraries logging through the standard library (sqlalchemy, redis)
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level_number)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _add_service,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_number),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def routing_context(message_id: str, organization_id: str) -> ContextManager[Any]:
    """Bind the routed message to all log entries inside the block.

    Usage:
        with routing_context(message.id, message.organization_id):
            ...
    """
    return structlog.contextvars.bound_contextvars(
        messageId=message_id,
        organizationId=organization_id,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Bound logger instance
    """
    return structlog.get_logger(name)
