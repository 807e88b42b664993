"""Structured logging for the reactor and its tasks.

Every task carries a logger bound to its identity (``task_id``, ``task``),
so lifecycle events, failure reports and user events can be correlated
across a tree without threading identifiers through task code.

Key Features:
    - Immutable loggers: ``bind()`` returns a new logger with merged context
    - ``log_context`` scopes extra keys over a block of code
    - Console output for development, JSON lines (orjson) for collection
    - Level captured when a logger is created, so a reactor keeps the
      verbosity it was started with

Quick Start:
    >>> from arbor.runtime.observability import configure_logging, get_logger
    >>>
    >>> configure_logging(format="console", level="DEBUG")
    >>> log = get_logger("arbor.reactor").bind_task(7, "fetch")
    >>> log.debug("task running")
    # => 10:30:45.120 [debug] task running  fetch#7  logger="arbor.reactor"
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Callable
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, TextIO, runtime_checkable

import orjson

from arbor.foundation.errors import JsonDict, JsonMapping, JsonValue

if TYPE_CHECKING:
    from types import TracebackType

    from arbor.foundation.config import ArborSettings, LoggingSettings

# Keys rendered as the task label on the console instead of as key=value pairs
_TASK_KEYS = ("task", "task_id")

# Extra context scoped with log_context; one reactor runs on one thread
_log_context: ContextVar[JsonDict] = ContextVar("log_context", default={})


# ─────────────────────────────────────────────────────────────────────────────
# Loggers
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class BoundLogger:
    """Logger carrying a fixed context and a minimum level.

    Example:
        >>> log = BoundLogger(context={"logger": "arbor.reactor"})
        >>> log.bind_task(3, "poll").warning("task failed with unobserved error", error_type="OSError")
    """

    context: JsonDict = field(default_factory=dict)
    level: int = logging.DEBUG
    renderer: LogRenderer | None = None

    def bind(self, **kw: JsonValue) -> BoundLogger:
        return BoundLogger({**self.context, **kw}, self.level, self.renderer)

    def bind_task(self, task_id: int, name: str, **kw: JsonValue) -> BoundLogger:
        """Logger for one task; ``task_id`` survives renaming and reparenting."""
        return self.bind(task_id=task_id, task=name, **kw)

    def enabled_for(self, level: int) -> bool:
        return level >= self.level

    def scope(self, **kw: JsonValue) -> log_context:
        """Shorthand for ``log_context(**kw)``."""
        return log_context(**kw)

    def debug(self, event: str, **kw: JsonValue) -> None:
        self._emit(logging.DEBUG, event, kw)

    def info(self, event: str, **kw: JsonValue) -> None:
        self._emit(logging.INFO, event, kw)

    def warning(self, event: str, **kw: JsonValue) -> None:
        self._emit(logging.WARNING, event, kw)

    def error(self, event: str, **kw: JsonValue) -> None:
        self._emit(logging.ERROR, event, kw)

    def _emit(self, level: int, event: str, kw: JsonMapping) -> None:
        if not self.enabled_for(level):
            return
        entry = LogEntry(time.time(), _level_name(level), event, {**_log_context.get(), **self.context, **kw})
        (self.renderer or _active_renderer()).render(entry)


class log_context:
    """Add keys to every entry logged inside the block, from any logger.

    Example:
        >>> with log_context(run="nightly"):
        ...     run_reactor(main)   # every reactor and task event carries run="nightly"
    """

    __slots__ = ("_extra", "_token")

    def __init__(self, **kw: JsonValue) -> None:
        self._extra: JsonMapping = kw
        self._token: object | None = None

    def __enter__(self) -> log_context:
        self._token = _log_context.set({**_log_context.get(), **self._extra})
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None,
                 exc_tb: TracebackType | None) -> None:
        if self._token is not None:
            _log_context.reset(self._token)  # type: ignore[arg-type]
            self._token = None


@dataclass(slots=True)
class LogEntry:
    """One rendered event."""

    timestamp: float
    level: str
    event: str
    context: JsonDict

    @property
    def ts_iso(self) -> str:
        return datetime.fromtimestamp(self.timestamp, tz=UTC).isoformat()

    @property
    def ts_human(self) -> str:
        return datetime.fromtimestamp(self.timestamp, tz=UTC).strftime("%H:%M:%S.%f")[:-3]

    @property
    def task_label(self) -> str | None:
        """``name#id`` of the task the event belongs to, if bound."""
        name, task_id = self.context.get("task"), self.context.get("task_id")
        if name is None and task_id is None:
            return None
        return f"{name or '?'}#{task_id if task_id is not None else '?'}"


# ─────────────────────────────────────────────────────────────────────────────
# Renderers
# ─────────────────────────────────────────────────────────────────────────────


@runtime_checkable
class LogRenderer(Protocol):
    def render(self, entry: LogEntry) -> None: ...


@dataclass(slots=True)
class ConsoleRenderer:
    """Development output: ``time [level] event  name#id  key=value ...``.

    A ``details`` value (failure tracebacks) is printed on its own lines.
    """

    output: TextIO = field(default_factory=lambda: sys.stderr)
    colors: bool | None = None  # None = colored when output is a terminal
    show_timestamp: bool = True

    def __post_init__(self) -> None:
        if self.colors is None:
            self.colors = bool(getattr(self.output, "isatty", lambda: False)())

    def render(self, entry: LogEntry) -> None:
        paint = _paint if self.colors else _plain
        head = [paint("dim", entry.ts_human)] if self.show_timestamp else []
        head.append(paint(_LEVEL_STYLE.get(entry.level, "dim"), f"[{entry.level}]"))
        head.append(paint("bold", entry.event))
        if (label := entry.task_label) is not None:
            head.append(" " + paint("cyan", label) + " ")
        pairs = [f"{paint('cyan', k)}={_console_value(v, paint)}"
                 for k, v in sorted(entry.context.items()) if k not in _TASK_KEYS and k != "details"]
        print(" ".join(head + pairs), file=self.output)
        if details := entry.context.get("details"):
            print(paint("red", str(details).rstrip("\n")), file=self.output)


@dataclass(slots=True)
class JsonRenderer:
    """One JSON object per line, for log shippers."""

    output: TextIO = field(default_factory=lambda: sys.stdout)

    def render(self, entry: LogEntry) -> None:
        record = {"timestamp": entry.ts_iso, "level": entry.level, "event": entry.event, **entry.context}
        self.output.write(orjson.dumps(record, option=orjson.OPT_NON_STR_KEYS | orjson.OPT_APPEND_NEWLINE,
                                       default=str).decode())


@dataclass(slots=True)
class NoOpRenderer:
    """Discard everything (tests, embedded use)."""

    def render(self, entry: LogEntry) -> None:
        pass


# ─────────────────────────────────────────────────────────────────────────────
# Global Configuration
# ─────────────────────────────────────────────────────────────────────────────


_RENDERERS: dict[str, Callable[[TextIO | None, bool | None], LogRenderer]] = {
    "console": lambda output, colors: ConsoleRenderer(output=output or sys.stderr, colors=colors),
    "json": lambda output, colors: JsonRenderer(output=output or sys.stdout),
    "none": lambda output, colors: NoOpRenderer(),
}

_renderer: ContextVar[LogRenderer | None] = ContextVar("log_renderer", default=None)
_default_level: ContextVar[int] = ContextVar("log_level", default=logging.INFO)


def configure_logging(
    format: str = "console",  # noqa: A002 - mirrors the ARBOR_LOG_FORMAT setting
    level: str = "INFO",
    *,
    output: TextIO | None = None,
    colors: bool | None = None,
) -> LogRenderer:
    """Select the renderer and minimum level for loggers created from now on.

    Args:
        format: "console", "json" or "none"
        level: Standard level name (case-insensitive)
        output: Stream to write to (default: stderr for console, stdout for json)
        colors: Force console colors on or off
    """
    if (factory := _RENDERERS.get(format)) is None:
        raise ValueError(f"Unknown log format {format!r}; expected one of {sorted(_RENDERERS)}")
    renderer = factory(output, colors)
    _default_level.set(logging.getLevelNamesMapping().get(level.upper(), logging.INFO))
    _renderer.set(renderer)
    return renderer


def configure_logging_from(settings: ArborSettings | LoggingSettings, *, output: TextIO | None = None) -> LogRenderer:
    """Apply settings from arbor.foundation.config.

    Given the root ``ArborSettings``, its ``debug`` flag forces DEBUG level.
    """
    section: LoggingSettings = getattr(settings, "logging", settings)
    level = getattr(settings, "effective_log_level", section.level)
    return configure_logging(section.format, level, output=output, colors=section.colors)


def reset_logging() -> None:
    """Back to the lazily created console renderer at INFO."""
    _renderer.set(None)
    _default_level.set(logging.INFO)


def get_logger(name: str | None = None, **initial_context: JsonValue) -> BoundLogger:
    """Logger at the configured level; ``name`` is bound as ``logger``."""
    context = {**initial_context, **({"logger": name} if name else {})}
    return BoundLogger(context, _default_level.get())


def _active_renderer() -> LogRenderer:
    if (renderer := _renderer.get()) is None:
        _renderer.set(renderer := ConsoleRenderer())
    return renderer


# ─────────────────────────────────────────────────────────────────────────────
# Console Helpers
# ─────────────────────────────────────────────────────────────────────────────


_ANSI = {"reset": "\033[0m", "bold": "\033[1m", "dim": "\033[2m", "red": "\033[31m", "green": "\033[32m",
         "yellow": "\033[33m", "blue": "\033[34m", "cyan": "\033[36m"}
_LEVEL_STYLE = {"debug": "dim", "info": "green", "warning": "yellow", "error": "red", "critical": "red"}

Paint = Callable[[str, str], str]


def _paint(style: str, text: str) -> str:
    return f"{_ANSI[style]}{text}{_ANSI['reset']}"


def _plain(style: str, text: str) -> str:
    return text


def _level_name(level: int) -> str:
    return logging.getLevelName(level).lower()


def _console_value(v: object, paint: Paint) -> str:
    match v:
        case str():
            return paint("yellow", f'"{v}"')
        case bool() | None:
            return paint("blue", str(v).lower())
        case int() | float():
            return paint("blue", str(v))
        case dict() | list() | tuple():
            return paint("dim", f"<{type(v).__name__} of {len(v)}>")
        case _:
            return repr(v)
