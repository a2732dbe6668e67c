"""Structured event logging for gates.

Every gate owns a BoundLogger carrying its name and kind. Events are short
phrases ("permit granted", "circuit state changed") with key/value fields;
a renderer decides how they leave the process.

    >>> from flowgate.runtime.observability import configure_logging, get_logger, log_context
    >>> configure_logging(format="json", level="DEBUG")
    >>> log = get_logger("flowgate.scheduler", gate="ingest")
    >>> log.info("task admitted", task="fetch-1", running=3)
    >>> with log_context(request_id="abc123"):
    ...     log.warning("acquire timed out")  # carries request_id

Fields merge in three layers, later winning: the ambient ``log_context``
scope, the logger's bound fields, then the call site.
"""

from __future__ import annotations

import logging
import sys
import time
import traceback
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, TextIO, runtime_checkable

import orjson

if TYPE_CHECKING:
    from collections.abc import Iterator

    from flowgate.foundation.config import LoggingSettings

Fields = dict[str, object]

_scope: ContextVar[Fields] = ContextVar("flowgate_log_scope", default={})


@dataclass(slots=True, frozen=True)
class LogEntry:
    """One emitted event. ``level`` is the lowercase level name."""

    created: float
    level: str
    event: str
    context: Fields

    @property
    def iso_time(self) -> str:
        return datetime.fromtimestamp(self.created, tz=UTC).isoformat()

    @property
    def clock_time(self) -> str:
        return datetime.fromtimestamp(self.created, tz=UTC).strftime("%H:%M:%S.%f")[:-3]


@runtime_checkable
class LogRenderer(Protocol):
    """Destination for log entries."""

    def render(self, entry: LogEntry) -> None: ...


@dataclass(slots=True)
class _Output:
    """Process-wide defaults used by loggers without their own renderer or level."""

    renderer: LogRenderer | None = None
    level: int = logging.INFO

    def sink(self) -> LogRenderer:
        if self.renderer is None:
            self.renderer = ConsoleRenderer()
        return self.renderer


_output = _Output()


@dataclass(slots=True, frozen=True)
class BoundLogger:
    """Logger with fields attached. ``bind``/``unbind`` return new loggers.

    ``renderer`` and ``level`` override the process defaults set by
    ``configure_logging``; leave them None to follow those defaults.
    """

    context: Fields = field(default_factory=dict)
    renderer: LogRenderer | None = None
    level: int | None = None

    def bind(self, **fields: object) -> BoundLogger:
        return replace(self, context={**self.context, **fields})

    def unbind(self, *keys: str) -> BoundLogger:
        return replace(self, context={k: v for k, v in self.context.items() if k not in keys})

    def is_enabled_for(self, level: int) -> bool:
        threshold = _output.level if self.level is None else self.level
        return level >= threshold

    def log(self, level: int, event: str, **fields: object) -> None:
        if not self.is_enabled_for(level):
            return
        entry = LogEntry(time.time(), logging.getLevelName(level).lower(), event,
                         {**_scope.get(), **self.context, **fields})
        (self.renderer or _output.sink()).render(entry)

    def debug(self, event: str, **fields: object) -> None:
        self.log(logging.DEBUG, event, **fields)

    def info(self, event: str, **fields: object) -> None:
        self.log(logging.INFO, event, **fields)

    def warning(self, event: str, **fields: object) -> None:
        self.log(logging.WARNING, event, **fields)

    def error(self, event: str, **fields: object) -> None:
        self.log(logging.ERROR, event, **fields)

    def exception(self, event: str, **fields: object) -> None:
        """Log at ERROR with the active traceback under ``exc_info``."""
        self.log(logging.ERROR, event, exc_info=traceback.format_exc(), **fields)


@contextmanager
def log_context(**fields: object) -> Iterator[None]:
    """Attach ``fields`` to every event logged inside the block, in this task."""
    token = _scope.set({**_scope.get(), **fields})
    try:
        yield
    finally:
        _scope.reset(token)


# Renderers

_ANSI = {"debug": "\033[2m", "info": "\033[32m", "warning": "\033[33m", "error": "\033[31m"}
_RESET = "\033[0m"


@dataclass(slots=True)
class ConsoleRenderer:
    """One line per event: ``HH:MM:SS.mmm [level] event key=value ...``.

    Colors default to on when ``output`` is a terminal.
    """

    output: TextIO = field(default_factory=lambda: sys.stderr)
    colors: bool | None = None

    def __post_init__(self) -> None:
        if self.colors is None:
            isatty = getattr(self.output, "isatty", None)
            self.colors = bool(isatty and isatty())

    def render(self, entry: LogEntry) -> None:
        tag = f"[{entry.level}]"
        if self.colors:
            tag = f"{_ANSI.get(entry.level, '')}{tag}{_RESET}"
        fields = " ".join(f"{k}={_show(v)}" for k, v in sorted(entry.context.items()) if k != "exc_info")
        line = f"{entry.clock_time} {tag} {entry.event}"
        self.output.write(f"{line} {fields}\n" if fields else f"{line}\n")
        if (tb := entry.context.get("exc_info")) is not None:
            self.output.write(f"{tb}\n")


@dataclass(slots=True)
class JsonRenderer:
    """JSON Lines: ``timestamp``, ``level`` and ``event`` plus the fields, flattened."""

    output: TextIO = field(default_factory=lambda: sys.stdout)

    def render(self, entry: LogEntry) -> None:
        record = {"timestamp": entry.iso_time, "level": entry.level, "event": entry.event, **entry.context}
        self.output.write(orjson.dumps(record, default=str, option=orjson.OPT_APPEND_NEWLINE).decode())


class NoOpRenderer:
    """Discards everything."""

    __slots__ = ()

    def render(self, entry: LogEntry) -> None:
        return None


@dataclass(slots=True)
class CapturingRenderer:
    """Collects entries in memory for inspection."""

    entries: list[LogEntry] = field(default_factory=list)

    def render(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    def events(self, level: str | None = None) -> list[str]:
        """Event names in emission order, optionally only those at ``level``."""
        return [e.event for e in self.entries if level in (None, e.level)]


def _show(value: object) -> str:
    if isinstance(value, str):
        return f'"{value}"' if " " in value else value
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# Configuration

_FORMATS = ("console", "json", "none")


def configure_logging(
    format: str = "console",  # noqa: A002
    level: str = "INFO",
    *,
    output: TextIO | None = None,
    colors: bool | None = None,
    renderer: LogRenderer | None = None,
) -> LogRenderer:
    """Set the process-wide renderer and level. Returns the active renderer.

    ``format`` is one of "console", "json" or "none"; an explicit
    ``renderer`` wins over it.

    Raises:
        ValueError: If ``format`` is unknown and no renderer is given
    """
    if renderer is None:
        if format not in _FORMATS:
            raise ValueError(f"Unknown log format {format!r}; expected one of {', '.join(_FORMATS)}")
        if format == "console":
            renderer = ConsoleRenderer(output=output or sys.stderr, colors=colors)
        elif format == "json":
            renderer = JsonRenderer(output=output or sys.stdout)
        else:
            renderer = NoOpRenderer()
    resolved = logging.getLevelName(level.upper())
    _output.level = resolved if isinstance(resolved, int) else logging.INFO
    _output.renderer = renderer
    return renderer


def configure_from_settings(settings: LoggingSettings | None = None) -> LogRenderer:
    """Apply FLOWGATE_LOG_FORMAT and FLOWGATE_LOG_LEVEL."""
    if settings is None:
        from flowgate.foundation.config import get_settings
        settings = get_settings().logging
    return configure_logging(format=settings.format, level=settings.level)


def get_logger(name: str | None = None, **fields: object) -> BoundLogger:
    """Logger whose context starts with ``logger=name`` (when given) and ``fields``."""
    return BoundLogger(context={"logger": name, **fields} if name else dict(fields))
