"""Unit tests for structlog configuration and trace correlation."""

from __future__ import annotations

import io
import json
from collections.abc import Iterator
from typing import Any
from unittest.mock import patch

import pytest
import structlog
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider

from kubeharness.logs import add_trace_context, configure_logging


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()


class TestAddTraceContext:
    """Tests for the add_trace_context processor."""

    def test_adds_ids_inside_span(self) -> None:
        tracer = TracerProvider().get_tracer("test")

        with tracer.start_as_current_span("scenario") as span:
            result = add_trace_context(None, "info", {"event": "scenario.started"})
            ctx = span.get_span_context()

        assert result["trace_id"] == format(ctx.trace_id, "032x")
        assert result["span_id"] == format(ctx.span_id, "016x")
        assert len(result["trace_id"]) == 32
        assert len(result["span_id"]) == 16

    def test_no_ids_without_span(self) -> None:
        event_dict: dict[str, Any] = {"event": "scenario.started"}
        result = add_trace_context(None, "info", event_dict)
        assert "trace_id" not in result
        assert "span_id" not in result

    def test_no_ids_for_invalid_span_context(self) -> None:
        span = trace.NonRecordingSpan(trace.INVALID_SPAN_CONTEXT)
        with trace.use_span(span):
            result = add_trace_context(None, "info", {"event": "resolver.resolved"})
        assert "trace_id" not in result
        assert "span_id" not in result

    def test_ids_are_lowercase_hex(self) -> None:
        ctx = trace.SpanContext(
            trace_id=0xABCDEF,
            span_id=0xBEEF,
            is_remote=False,
            trace_flags=trace.TraceFlags(trace.TraceFlags.SAMPLED),
        )
        with trace.use_span(trace.NonRecordingSpan(ctx)):
            result = add_trace_context(None, "info", {"event": "pods.created"})
        assert result["trace_id"] == "0" * 26 + "abcdef"
        assert result["span_id"] == "000000000000beef"


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_json_output(self) -> None:
        stream = io.StringIO()
        with patch("kubeharness.logs.sys.stderr", stream):
            configure_logging("INFO", json_output=True)
            structlog.get_logger("test").info("scenario.finished", passed=True)

        record = json.loads(stream.getvalue().strip())
        assert record["event"] == "scenario.finished"
        assert record["passed"] is True
        assert record["level"] == "info"
        assert "timestamp" in record

    def test_filters_below_level(self) -> None:
        stream = io.StringIO()
        with patch("kubeharness.logs.sys.stderr", stream):
            configure_logging("WARNING", json_output=True)
            log = structlog.get_logger("test")
            log.info("polling.condition_met")
            log.warning("polling.timeout")

        lines = stream.getvalue().strip().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["event"] == "polling.timeout"

    def test_console_output(self) -> None:
        stream = io.StringIO()
        with patch("kubeharness.logs.sys.stderr", stream):
            configure_logging("debug")
            structlog.get_logger("test").debug("pods.readiness", ready=0)

        assert "pods.readiness" in stream.getvalue()

    def test_unknown_level(self) -> None:
        with pytest.raises(ValueError, match="Unknown log level"):
            configure_logging("LOUD")
