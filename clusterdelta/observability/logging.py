"""Structured logging configuration using structlog.

clusterdelta logs JSON lines to stderr.  Every line carries the cluster ID
once it is known, bound through structlog's contextvars so that components
never pass it around.  Third-party libraries (httpx, kubernetes-asyncio)
log through the standard library; they are capped at WARNING unless the
agent itself runs at DEBUG.
"""

from __future__ import annotations

import logging
import sys

import structlog

_NOISY_LIBRARIES = ("httpx", "httpcore", "kubernetes_asyncio", "aiohttp")


def setup_logging(level: str = "info", json_output: bool = True) -> None:
    """Configure structlog (and stdlib logging for libraries) at *level*."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(stream=sys.stderr, level=log_level, format="%(levelname)s %(name)s %(message)s")
    library_level = logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
    for name in _NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(library_level)


def bind_cluster(cluster_id: str) -> None:
    """Attach *cluster_id* to every subsequent log line in this context."""
    structlog.contextvars.bind_contextvars(cluster_id=cluster_id)


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]
