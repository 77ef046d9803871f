"""Structured logging and in-process metrics."""

from .logger import LogContext, add_context, clear_all_context, clear_context, configure_logging
from .metrics import LoggerBackend, MetricsCollector, get_global_collector

__all__ = [
    "LogContext",
    "add_context",
    "clear_context",
    "clear_all_context",
    "configure_logging",
    "LoggerBackend",
    "MetricsCollector",
    "get_global_collector",
]
