"""Structured logging setup shared by all entry points.

Call `configure_logging()` once per process (the dispatcher does it on cold
start), then log with `structlog.get_logger()`:

    log = structlog.get_logger()
    log.info("event_name", key="value")
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import structlog
from structlog.typing import Processor

LOG_LEVEL_ENV = "LOG_LEVEL"
LOG_FORMAT_ENV = "LOG_FORMAT"
DEFAULT_LOG_LEVEL = "INFO"


def _get_log_level() -> int:
    level_name = os.getenv(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL).upper()
    return getattr(logging, level_name, logging.INFO)


def configure_logging(fmt: Optional[str] = None) -> None:
    """Configure structlog: `json` (default) for Lambda, `console` for local runs."""
    fmt = (fmt or os.getenv(LOG_FORMAT_ENV, "json")).lower()
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if fmt == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_get_log_level()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


__all__ = ["configure_logging"]
