"""Tests for observability module."""

import json
import logging
import time

import pytest

from dataset_viewer.observability import (
    LogContext,
    LogLevel,
    RequestContext,
    StructuredFormatter,
    StructuredLogger,
    Timer,
    archive_path_var,
    configure_logging,
    emit_counter,
    emit_metric,
    emit_timer,
    get_logger,
    register_metric_callback,
    request_id_var,
    session_id_var,
    unregister_metric_callback,
)


def make_record(msg: str = "Test message", **attrs) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


class TestLogContext:
    """Tests for LogContext."""

    def test_current_returns_empty_when_no_context(self) -> None:
        """Current returns empty context when no vars set."""
        context = LogContext.current()
        assert context.request_id is None
        assert context.session_id is None
        assert context.archive_path is None

    def test_to_dict_excludes_none_values(self) -> None:
        """to_dict excludes None values."""
        context = LogContext(request_id="req-123", archive_path="data/a.zip")

        assert context.to_dict() == {"request_id": "req-123", "archive_path": "data/a.zip"}

    def test_to_dict_includes_extra(self) -> None:
        """to_dict includes extra fields."""
        context = LogContext(session_id="sess-1", extra={"entries": 3})

        assert context.to_dict() == {"session_id": "sess-1", "entries": 3}


class TestStructuredFormatter:
    """Tests for StructuredFormatter."""

    def test_formats_as_json(self) -> None:
        """Formats log record as JSON."""
        parsed = json.loads(StructuredFormatter().format(make_record()))

        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Test message"
        assert parsed["logger"] == "test"
        assert "timestamp" in parsed
        assert "context" not in parsed

    def test_merges_bound_and_record_context(self) -> None:
        """Context variables and per-call context are merged."""
        record = make_record(context={"offset": 42}, duration_ms=1.23456)

        with RequestContext(request_id="req-1", session_id="sess-1"):
            parsed = json.loads(StructuredFormatter().format(record))

        assert parsed["context"] == {"request_id": "req-1", "session_id": "sess-1", "offset": 42}
        assert parsed["duration_ms"] == 1.235

    def test_includes_error(self) -> None:
        """Exception info becomes an error object."""
        try:
            raise ValueError("bad value")
        except ValueError as e:
            record = make_record(exc_info=(type(e), e, e.__traceback__))

        parsed = json.loads(StructuredFormatter().format(record))

        assert parsed["error"] == {"type": "ValueError", "message": "bad value"}


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_info_logs_at_info_level(self, caplog: pytest.LogCaptureFixture) -> None:
        """Info method logs at INFO level with context attached."""
        logger = StructuredLogger("test.logger")

        with caplog.at_level(logging.INFO, logger="test.logger"):
            logger.info("Test message", context={"size": 10}, duration_ms=2.0)

        assert len(caplog.records) == 1
        assert caplog.records[0].levelname == "INFO"
        assert caplog.records[0].context == {"size": 10}
        assert caplog.records[0].duration_ms == 2.0

    def test_error_logs_exception(self, caplog: pytest.LogCaptureFixture) -> None:
        """Error method attaches the exception."""
        logger = StructuredLogger("test.error")
        error = RuntimeError("boom")

        with caplog.at_level(logging.ERROR, logger="test.error"):
            logger.error("Error message", error=error)

        assert caplog.records[0].levelname == "ERROR"
        assert caplog.records[0].exc_info[1] is error

    def test_debug_filtered_by_level(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = StructuredLogger("test.debug")

        with caplog.at_level(logging.INFO, logger="test.debug"):
            logger.debug("hidden")

        assert caplog.records == []


class TestRequestContext:
    """Tests for RequestContext."""

    def test_sets_context_vars(self) -> None:
        """Sets context variables within context and resets them after."""
        with RequestContext(request_id="req-123", session_id="sess-abc", archive_path="a.zip"):
            assert request_id_var.get() == "req-123"
            assert session_id_var.get() == "sess-abc"
            assert archive_path_var.get() == "a.zip"

        assert request_id_var.get() is None
        assert session_id_var.get() is None
        assert archive_path_var.get() is None

    def test_nested_contexts_unwind(self) -> None:
        """An inner context restores the outer values on exit."""
        with RequestContext(request_id="outer", session_id="sess-1"):
            with RequestContext(request_id="inner", archive_path="b.tar"):
                assert request_id_var.get() == "inner"
                assert session_id_var.get() == "sess-1"
            assert request_id_var.get() == "outer"
            assert archive_path_var.get() is None

    def test_generates_request_id_if_not_provided(self) -> None:
        """Generates request ID if not provided."""
        with RequestContext() as ctx:
            assert ctx.request_id
            assert request_id_var.get() == ctx.request_id

    @pytest.mark.asyncio
    async def test_works_as_async_context_manager(self) -> None:
        """Works as async context manager."""
        async with RequestContext(request_id="async-req") as ctx:
            assert ctx.request_id == "async-req"
            assert request_id_var.get() == "async-req"


class TestTimer:
    """Tests for Timer."""

    def test_measures_duration(self) -> None:
        """Measures elapsed time."""
        with Timer() as timer:
            time.sleep(0.05)

        assert timer.duration_ms >= 40
        assert timer.duration_ms < 1000

    def test_duration_frozen_after_exit(self) -> None:
        with Timer() as timer:
            pass
        first = timer.duration_ms
        time.sleep(0.01)

        assert timer.duration_ms == first


class TestMetrics:
    """Tests for metric functions."""

    def test_register_and_emit_metric(self, metrics) -> None:
        """Register callback and emit metric."""
        emit_metric("test.metric", 42.5, {"key": "value"})

        assert metrics[-1] == ("test.metric", 42.5, {"key": "value"})

    def test_emit_counter(self, metrics) -> None:
        """Emit counter increments by 1."""
        emit_counter("test.counter")

        assert metrics[-1] == ("test.counter", 1.0, {})

    def test_emit_timer(self, metrics) -> None:
        """Emit timer with duration."""
        emit_timer("test.timer", 123.45)

        assert metrics[-1][:2] == ("test.timer", 123.45)

    def test_session_label_from_context(self, metrics) -> None:
        """The bound session id is added as a label."""
        with RequestContext(session_id="sess-9"):
            emit_counter("test.labelled", {"format": "zip"})

        assert metrics[-1][2] == {"format": "zip", "session_id": "sess-9"}

    def test_failing_callback_does_not_break_others(self, metrics) -> None:
        def broken(name: str, value: float, labels: dict) -> None:
            raise RuntimeError("callback failed")

        register_metric_callback(broken)
        try:
            emit_counter("test.resilient")
        finally:
            unregister_metric_callback(broken)

        assert metrics[-1][0] == "test.resilient"

    def test_unregister_unknown_is_noop(self) -> None:
        unregister_metric_callback(lambda name, value, labels: None)


class TestConfigureLogging:
    """Tests for configure_logging."""

    @pytest.fixture(autouse=True)
    def restore_package_logger(self):
        root = logging.getLogger("dataset_viewer")
        level, handlers = root.level, list(root.handlers)
        yield
        root.setLevel(level)
        root.handlers[:] = handlers

    def test_configures_package_logger(self) -> None:
        """Configures the package logger with a JSON handler."""
        configure_logging(level=LogLevel.DEBUG, format="json")

        root = logging.getLogger("dataset_viewer")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)

    def test_text_format_and_string_level(self) -> None:
        configure_logging(level="warning", format="text")

        root = logging.getLogger("dataset_viewer")
        assert root.level == logging.WARNING
        assert not isinstance(root.handlers[0].formatter, StructuredFormatter)

    def test_get_logger_returns_structured_logger(self) -> None:
        """get_logger returns StructuredLogger."""
        logger = get_logger("test.module")
        assert isinstance(logger, StructuredLogger)
