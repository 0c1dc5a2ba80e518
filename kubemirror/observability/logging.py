"""structlog setup for kubemirror.

Everything goes to stderr as JSON lines: stdout belongs to command output
(``kubemirror list --json``). Library loggers that use the standard
``logging`` module (kubernetes_asyncio, aiohttp) are routed to the same
stream and only speak up at warning level unless debug logging is on.
"""

from __future__ import annotations

import logging
import sys
from typing import cast

import structlog
from structlog.typing import FilteringBoundLogger

_LIBRARY_LOGGERS: tuple[str, ...] = ("kubernetes_asyncio", "aiohttp")


def setup_logging(level: str = "info") -> None:
    """Configure structlog and the stdlib library loggers for ``level``."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(stream=sys.stderr, format="%(name)s %(levelname)s %(message)s", level=log_level, force=True)
    library_level = log_level if log_level <= logging.DEBUG else max(log_level, logging.WARNING)
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


def get_logger(component: str, **context: str) -> FilteringBoundLogger:
    """Return a logger bound to ``component`` plus any extra context.

    Scope caches pass ``namespace=...`` so every line they emit carries it.
    """
    return cast(FilteringBoundLogger, structlog.get_logger(component=component, **context))
