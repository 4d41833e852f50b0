"""Structured logging with bound context.

Log records are an event name plus key/value context. Context comes from
three layers, merged in order: the scope (log_context), the logger (bind)
and the call site. Records are rendered as one line of text or one JSON
object per line.

Quick Start:
    >>> from pullstream.observability import configure_logging, get_logger
    >>>
    >>> configure_logging(format="console", level="DEBUG")  # or "json"
    >>> log = get_logger("pullstream.streams").bind(stream="upload")
    >>> log.debug("reader released", outcome="complete")
    # => 10:30:45.120 [debug] reader released logger="pullstream.streams" outcome="complete" stream="upload"

Unset arguments to configure_logging() fall back to PULLSTREAM_LOG_* settings.
"""

from __future__ import annotations

import logging
import sys
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, TextIO, runtime_checkable

import orjson

from pullstream.errors import JsonDict, JsonValue

if TYPE_CHECKING:
    from types import TracebackType

_scope: ContextVar[JsonDict] = ContextVar("pullstream_log_scope", default={})
_renderer: ContextVar[LogRenderer | None] = ContextVar("pullstream_log_renderer", default=None)
_threshold: ContextVar[int] = ContextVar("pullstream_log_threshold", default=logging.INFO)


# ─────────────────────────────────────────────────────────────────────────────
# Records
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class LogEntry:
    """A rendered-to-be log record."""

    timestamp: float
    level: str
    event: str
    context: JsonDict

    @property
    def when(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=UTC)

    def as_dict(self) -> JsonDict:
        """Flat mapping used by the JSON renderer; context keys never shadow the header."""
        return {**self.context, "timestamp": self.when.isoformat(), "level": self.level, "event": self.event}


@runtime_checkable
class LogRenderer(Protocol):
    """Writes a LogEntry somewhere."""

    def render(self, entry: LogEntry) -> None: ...


# ─────────────────────────────────────────────────────────────────────────────
# Logger
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class BoundLogger:
    """Logger carrying a fixed context. bind() returns a new logger.

    The threshold and renderer are looked up when a record is emitted, so
    module-level loggers follow later calls to configure_logging().
    """

    context: JsonDict = field(default_factory=dict)

    def bind(self, **kw: JsonValue) -> BoundLogger:
        return BoundLogger({**self.context, **kw})

    def enabled(self, level: int) -> bool:
        return level >= _threshold.get()

    def debug(self, event: str, **kw: JsonValue) -> None:
        self._emit(logging.DEBUG, event, kw)

    def warning(self, event: str, **kw: JsonValue) -> None:
        self._emit(logging.WARNING, event, kw)

    def _emit(self, level: int, event: str, kw: JsonDict) -> None:
        if not self.enabled(level):
            return
        entry = LogEntry(time.time(), logging.getLevelName(level).lower(), event,
                         {**_scope.get(), **self.context, **kw})
        _current_renderer().render(entry)


class log_context:
    """Adds key/value pairs to every record emitted inside the with-block."""

    __slots__ = ("_extra", "_token")

    def __init__(self, **kw: JsonValue) -> None:
        self._extra: JsonDict = kw
        self._token = None

    def __enter__(self) -> log_context:
        self._token = _scope.set({**_scope.get(), **self._extra})
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None,
                 exc_tb: TracebackType | None) -> None:
        if self._token is not None:
            _scope.reset(self._token)
            self._token = None


def get_logger(name: str | None = None, **initial_context: JsonValue) -> BoundLogger:
    """Logger whose context holds initial_context and, when given, logger=name."""
    if name:
        initial_context["logger"] = name
    return BoundLogger(initial_context)


# ─────────────────────────────────────────────────────────────────────────────
# Renderers
# ─────────────────────────────────────────────────────────────────────────────


_ANSI = {"debug": "\033[2m", "info": "\033[32m", "warning": "\033[33m", "key": "\033[36m", "reset": "\033[0m"}


@dataclass(slots=True)
class ConsoleRenderer:
    """One line per record: HH:MM:SS.mmm [level] event key=value ... (keys sorted)."""

    output: TextIO = field(default_factory=lambda: sys.stderr)
    colors: bool | None = None  # None = colors only on a tty

    def __post_init__(self) -> None:
        if self.colors is None:
            isatty = getattr(self.output, "isatty", None)
            self.colors = bool(isatty and isatty())

    def render(self, entry: LogEntry) -> None:
        level = f"[{entry.level}]"
        pairs = [f"{self._paint('key', key)}={_show(value)}" for key, value in sorted(entry.context.items())]
        stamp = entry.when.strftime("%H:%M:%S.%f")[:-3]
        line = " ".join([stamp, self._paint(entry.level, level), entry.event, *pairs])
        self.output.write(line + "\n")

    def _paint(self, style: str, text: str) -> str:
        if not self.colors or style not in _ANSI:
            return text
        return f"{_ANSI[style]}{text}{_ANSI['reset']}"


@dataclass(slots=True)
class JsonRenderer:
    """JSON Lines via orjson. Values orjson cannot encode are written as repr()."""

    output: TextIO = field(default_factory=lambda: sys.stdout)

    def render(self, entry: LogEntry) -> None:
        payload = orjson.dumps(entry.as_dict(), option=orjson.OPT_NON_STR_KEYS | orjson.OPT_APPEND_NEWLINE, default=repr)
        self.output.write(payload.decode())


@dataclass(slots=True)
class NoOpRenderer:
    """Discards every record."""

    def render(self, entry: LogEntry) -> None:
        return None


def _show(value: object) -> str:
    if isinstance(value, str):
        return f'"{value}"'
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# ─────────────────────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────────────────────


def configure_logging(
    format: str | None = None,  # noqa: A002
    level: str | None = None,
    *,
    output: TextIO | None = None,
    colors: bool | None = None,
) -> LogRenderer:
    """Install the renderer and threshold used by every BoundLogger.

    Args:
        format: "console", "json" or "none" (default: settings logging.format)
        level: Threshold name such as "DEBUG" (default: settings effective_log_level)
        output: Stream to write to (console: stderr, json: stdout)
        colors: Force console colors on or off (default: settings logging.colors)
    """
    from pullstream.config import get_settings

    settings = get_settings()
    format = format or settings.logging.format
    threshold = logging.getLevelName((level or settings.effective_log_level).upper())
    renderer: LogRenderer
    match format:
        case "console":
            renderer = ConsoleRenderer(output or sys.stderr, settings.logging.colors if colors is None else colors)
        case "json":
            renderer = JsonRenderer(output or sys.stdout)
        case "none":
            renderer = NoOpRenderer()
        case _:
            raise ValueError(f"Unknown format: {format}. Use 'console', 'json', or 'none'")
    _threshold.set(threshold if isinstance(threshold, int) else logging.INFO)
    _renderer.set(renderer)
    return renderer


def _current_renderer() -> LogRenderer:
    if (renderer := _renderer.get()) is None:
        renderer = ConsoleRenderer()
        _renderer.set(renderer)
    return renderer
