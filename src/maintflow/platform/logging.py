"""
MaintFlow Structured Logging

structlog in front of the standard library: JSON lines in production,
coloured console output elsewhere. Records from plain `logging.getLogger`
loggers go through the same processors, so values bound with
dispatch_context() reach every record emitted while a dispatch runs.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

from maintflow.platform.config import settings

HANDLER_NAME = "maintflow"


def configure_logging() -> None:
    """Configure structlog and the stdlib root logger. Safe to call more than once."""

    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    renderer = (
        structlog.processors.JSONRenderer()
        if settings.APP_ENV == "production"
        else structlog.dev.ConsoleRenderer(colors=settings.DEBUG)
    )

    structlog.configure(
        processors=shared_processors + [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            # Applied to records that did not come through structlog
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(log_level)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


@contextmanager
def dispatch_context(**values: Any) -> Iterator[None]:
    """
    Bind tenant and trigger (or any other keys) for the duration of one dispatch.

    Bindings live in contextvars, so concurrent dispatches on the same event
    loop never see each other's values.
    """
    with structlog.contextvars.bound_contextvars(**values):
        yield
