"""Logging and metrics for clusterdelta."""

from clusterdelta.observability.logging import bind_cluster, get_logger, setup_logging

__all__ = ["bind_cluster", "get_logger", "setup_logging"]
