"""Tests for structured logging helpers."""

import io
import json
import logging

import pytest

from flock_core.logging import (
    ConsoleFormatter, CorrelationContext, JSONFormatter, get_logger, setup_logging, trace_operation,
)


class TestCorrelationContext:
    def test_id_is_stable_per_thread(self):
        CorrelationContext.clear_correlation_id()
        first = CorrelationContext.get_correlation_id()
        assert CorrelationContext.get_correlation_id() == first

    def test_set_and_clear(self):
        CorrelationContext.set_correlation_id("step-1")
        assert CorrelationContext.get_trace_context()["correlation_id"] == "step-1"
        CorrelationContext.clear_correlation_id()
        assert CorrelationContext.get_correlation_id() != "step-1"

    def test_operation_stack(self):
        CorrelationContext.push_operation("outer")
        CorrelationContext.push_operation("inner")
        assert CorrelationContext.get_trace_context()["operation_stack"][-2:] == ["outer", "inner"]
        assert CorrelationContext.pop_operation() == "inner"
        assert CorrelationContext.pop_operation() == "outer"


class TestTraceOperation:
    def test_returns_result(self):
        @trace_operation("double")
        def double(x):
            return x * 2

        assert double(4) == 8
        assert CorrelationContext.get_trace_context()["depth"] == 0

    def test_reraises(self):
        @trace_operation("explode")
        def explode():
            raise KeyError("missing")

        with pytest.raises(KeyError):
            explode()
        assert CorrelationContext.get_trace_context()["depth"] == 0


def test_json_formatter_includes_inference_settings():
    record = logging.LogRecord("flock.test", logging.INFO, __file__, 1, "hello", None, None)
    entry = json.loads(JSONFormatter().format(record))
    assert entry["message"] == "hello"
    assert entry["inference"]["default_device"] == "DEFAULT"
    assert entry["inference"]["deterministic"] is False
    assert "correlation_id" in entry["correlation"]


@pytest.fixture
def console_stream():
    """Route the console handler into a buffer, restoring normal setup afterwards."""
    setup_logging()
    stream = io.StringIO()
    for handler in logging.getLogger().handlers:
        if isinstance(handler.formatter, ConsoleFormatter):
            handler.setStream(stream)
    yield stream
    setup_logging()


def test_console_line_has_single_prefix(console_stream):
    get_logger("flock.console_check").info("Runner ready", batch_size=3)

    lines = console_stream.getvalue().splitlines()
    assert len(lines) == 1
    line = lines[0]
    assert line.count("flock.console_check") == 1
    assert line.count("INFO") == 1
    assert "[info" not in line
    assert "Runner ready" in line
    assert "batch_size=3" in line
