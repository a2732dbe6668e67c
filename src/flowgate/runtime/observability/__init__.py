"""Observability for gates: structured event logging."""

from .logging import (
    BoundLogger,
    CapturingRenderer,
    ConsoleRenderer,
    JsonRenderer,
    LogEntry,
    LogRenderer,
    NoOpRenderer,
    configure_from_settings,
    configure_logging,
    get_logger,
    log_context,
)

__all__ = [
    "BoundLogger",
    "CapturingRenderer",
    "ConsoleRenderer",
    "JsonRenderer",
    "LogEntry",
    "LogRenderer",
    "NoOpRenderer",
    "configure_from_settings",
    "configure_logging",
    "get_logger",
    "log_context",
]
