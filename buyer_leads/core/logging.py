from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

import structlog

from buyer_leads.core.config import settings


def configure_structlog(stream: Optional[TextIO] = None) -> None:
    """Route structlog through stdlib logging, rendered as JSON or for the console.

    The CLI passes ``sys.stderr`` so its stdout stays clean for CSV and tokens.
    """
    level = logging.getLevelName(settings.log_level)
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.log_format == "console"
        else structlog.processors.JSONRenderer()
    )

    logging.basicConfig(level=level, format="%(message)s", stream=stream or sys.stdout, force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_structlog_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_id(request_id: Optional[str] = None) -> None:
    """Bind ``request_id`` for every later log call in this context; ``None`` clears the context."""
    if request_id:
        structlog.contextvars.bind_contextvars(request_id=request_id)
    else:
        structlog.contextvars.clear_contextvars()
