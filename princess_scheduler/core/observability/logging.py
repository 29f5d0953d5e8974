"""structlog configuration for the scheduler.

Modules log through ``structlog.get_logger(__name__)`` with event-style
names (``move_proposed``, ``move_committed``). The CLI calls
``configure_logging`` once per invocation; output goes to stderr so JSON
results on stdout stay machine-readable.
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Optional

import structlog
from structlog.typing import Processor

LOG_LEVEL_ENV = "PRINCESS_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"


def resolve_log_level(level: Optional[str] = None) -> int:
    name = (level or os.getenv(LOG_LEVEL_ENV) or DEFAULT_LOG_LEVEL).upper()
    return getattr(logging, name, logging.WARNING)


def configure_logging(level: Optional[str] = None, renderer: str = "console") -> None:
    """Configure structlog.

    Args:
        level: level name (DEBUG, INFO, ...); falls back to PRINCESS_LOG_LEVEL.
        renderer: 'console' for human output, 'json' for log aggregation.
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if renderer == "json":
        final_processor: Processor = structlog.processors.JSONRenderer()
    else:
        final_processor = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=shared_processors + [final_processor],
        wrapper_class=structlog.make_filtering_bound_logger(resolve_log_level(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        # Loggers re-resolve on each call so a reconfigured stderr is honoured.
        cache_logger_on_first_use=False,
    )
