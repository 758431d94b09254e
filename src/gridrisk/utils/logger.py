"""
Logging Configuration

Structured logging via structlog. Request and report identifiers are bound
through contextvars so every event emitted while handling them carries the
same keys.
"""
import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog
from structlog.types import EventDict, Processor

from config.settings import settings


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Stamp every entry with the service name and environment.
    """
    event_dict.setdefault("service", "gridrisk")
    event_dict["environment"] = settings.environment
    return event_dict


def _processors(log_format: str) -> list:
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        add_app_context,
    ]
    if log_format == "json":
        chain += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        chain += [structlog.processors.ExceptionRenderer(), structlog.dev.ConsoleRenderer()]
    return chain


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> structlog.BoundLogger:
    """
    Configure stdlib logging and structlog.

    Args:
        log_level: Level name (defaults to settings.log_level)
        log_format: 'json' or 'console' (defaults to settings.log_format)

    Returns:
        Root structlog logger
    """
    level = getattr(logging, (log_level or settings.log_level).upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    structlog.configure(
        processors=_processors(log_format or settings.log_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger()


def get_logger(name: str = None) -> structlog.BoundLogger:
    """
    Get a logger for a module.

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name) if name else structlog.get_logger()


def bind_request_context(**values: Any):
    """Replace the request-scoped logging context."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**values)


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """
    Bind keys for the duration of a block.

    Usage:
        with log_context(report_id=report.id):
            ...
    """
    with structlog.contextvars.bound_contextvars(**values):
        yield
