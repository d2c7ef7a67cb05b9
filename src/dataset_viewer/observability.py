"""Structured logging and observability utilities.

Every log line is a single JSON object carrying the request, storage session
and archive being worked on, so a slow range read can be traced back to the
request that issued it.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
session_id_var: ContextVar[str | None] = ContextVar("session_id", default=None)
archive_path_var: ContextVar[str | None] = ContextVar("archive_path", default=None)


class LogLevel(str, Enum):
    """Log levels matching Python's logging module."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class LogContext:
    """Context data attached to every log entry."""

    request_id: str | None = None
    session_id: str | None = None
    archive_path: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def current(cls) -> "LogContext":
        """Get current context from context variables."""
        return cls(
            request_id=request_id_var.get(),
            session_id=session_id_var.get(),
            archive_path=archive_path_var.get(),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        result: dict[str, Any] = {}
        if self.request_id:
            result["request_id"] = self.request_id
        if self.session_id:
            result["session_id"] = self.session_id
        if self.archive_path:
            result["archive_path"] = self.archive_path
        result.update(self.extra)
        return result


class StructuredFormatter(logging.Formatter):
    """Formats log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        context = LogContext.current().to_dict()
        if isinstance(getattr(record, "context", None), dict):
            context.update(record.context)

        data: dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "logger": record.name,
        }
        if context:
            data["context"] = context
        if record.exc_info and record.exc_info[0]:
            data["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }
        duration_ms = getattr(record, "duration_ms", None)
        if duration_ms is not None:
            data["duration_ms"] = round(duration_ms, 3)

        return json.dumps(data, default=str)


class StructuredLogger:
    """Wrapper around a stdlib logger that accepts context and durations.

    Example:
        logger = get_logger(__name__)
        logger.info("Central directory read", context={"size": 4096})
        logger.error("Range read failed", error=exc)
    """

    def __init__(self, name: str) -> None:
        self.logger = logging.getLogger(name)

    def _log(
        self,
        level: LogLevel,
        message: str,
        context: dict[str, Any] | None = None,
        error: BaseException | None = None,
        duration_ms: float | None = None,
    ) -> None:
        extra: dict[str, Any] = {}
        if context:
            extra["context"] = context
        if duration_ms is not None:
            extra["duration_ms"] = duration_ms

        log_func = getattr(self.logger, level.value.lower())
        if error is not None:
            log_func(message, exc_info=(type(error), error, error.__traceback__), extra=extra)
        else:
            log_func(message, extra=extra)

    def debug(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self._log(LogLevel.DEBUG, message, context, duration_ms=duration_ms)

    def info(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self._log(LogLevel.INFO, message, context, duration_ms=duration_ms)

    def warning(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        error: BaseException | None = None,
    ) -> None:
        self._log(LogLevel.WARNING, message, context, error)

    def error(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        error: BaseException | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self._log(LogLevel.ERROR, message, context, error, duration_ms)


class RequestContext:
    """Context manager binding request-scoped logging context.

    Example:
        async with RequestContext(session_id=session_id, archive_path=path):
            logger.info("Reading archive")
    """

    def __init__(
        self,
        request_id: str | None = None,
        session_id: str | None = None,
        archive_path: str | None = None,
    ) -> None:
        self.request_id = request_id or str(uuid.uuid4())
        self.session_id = session_id
        self.archive_path = archive_path
        self._tokens: list[tuple[ContextVar, Any]] = []

    def __enter__(self) -> "RequestContext":
        self._tokens.append((request_id_var, request_id_var.set(self.request_id)))
        if self.session_id:
            self._tokens.append((session_id_var, session_id_var.set(self.session_id)))
        if self.archive_path:
            self._tokens.append((archive_path_var, archive_path_var.set(self.archive_path)))
        return self

    def __exit__(self, *args: Any) -> None:
        # Reset in reverse order so nested contexts unwind cleanly
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    async def __aenter__(self) -> "RequestContext":
        return self.__enter__()

    async def __aexit__(self, *args: Any) -> None:
        self.__exit__(*args)


class Timer:
    """Context manager for timing operations.

    Example:
        with Timer() as t:
            data = await backend.read_range(path, offset, length)
        logger.debug("Range read", duration_ms=t.duration_ms)
    """

    def __init__(self) -> None:
        self.start_time: float = 0
        self.end_time: float = 0

    @property
    def duration_ms(self) -> float:
        """Duration in milliseconds; reads the running time while still open."""
        end = self.end_time or time.perf_counter()
        return (end - self.start_time) * 1000

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        self.end_time = 0
        return self

    def __exit__(self, *args: Any) -> None:
        self.end_time = time.perf_counter()


MetricCallback = Callable[[str, float, dict[str, Any]], None]

_metric_callbacks: list[MetricCallback] = []


def register_metric_callback(callback: MetricCallback) -> None:
    """Register a callback to receive metric events.

    Args:
        callback: Function(name, value, labels) to call on metrics
    """
    _metric_callbacks.append(callback)


def unregister_metric_callback(callback: MetricCallback) -> None:
    """Remove a previously registered callback. No-op if absent."""
    if callback in _metric_callbacks:
        _metric_callbacks.remove(callback)


def emit_metric(name: str, value: float, labels: dict[str, Any] | None = None) -> None:
    """Emit a metric to all registered callbacks."""
    labels = dict(labels or {})
    session_id = session_id_var.get()
    if session_id:
        labels.setdefault("session_id", session_id)

    for callback in list(_metric_callbacks):
        try:
            callback(name, value, labels)
        except Exception as e:
            logging.getLogger(__name__).warning("Metric callback failed: %s", e)


def emit_counter(name: str, labels: dict[str, Any] | None = None) -> None:
    """Emit a counter metric (increment by 1)."""
    emit_metric(name, 1.0, labels)


def emit_timer(name: str, duration_ms: float, labels: dict[str, Any] | None = None) -> None:
    """Emit a timer metric."""
    emit_metric(name, duration_ms, labels)


def configure_logging(level: str | LogLevel = LogLevel.INFO, format: str = "json") -> None:
    """Configure the package root logger.

    Args:
        level: Minimum log level
        format: Output format ("json" or "text")
    """
    level_name = level.value if isinstance(level, LogLevel) else str(level).upper()
    root_logger = logging.getLogger("dataset_viewer")
    root_logger.setLevel(level_name)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if format == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))
    root_logger.addHandler(handler)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module (typically ``__name__``)."""
    return StructuredLogger(name)
