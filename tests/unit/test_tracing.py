"""
Unit tests for utils.tracing

Spans are captured with an in-memory exporter on a private provider so
the global tracer provider is never replaced.
"""

from unittest.mock import patch

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from utils.tracing import (
    add_span_attributes,
    add_span_event,
    get_tracer,
    initialize_tracing,
    shutdown_tracing,
    trace_operation,
)


@pytest.fixture
def exporter():
    span_exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    with patch("utils.tracing.context.get_tracer", return_value=provider.get_tracer("tests")):
        yield span_exporter
    provider.shutdown()


class TestTraceOperation:
    """Test span helpers"""

    def test_attributes_set_and_none_skipped(self, exporter):
        with trace_operation("import.run", table_id="sales", start_row_id=None, chunk_size=5):
            add_span_attributes(rows_committed=12, status="done")

        span = exporter.get_finished_spans()[0]
        assert span.name == "import.run"
        assert span.attributes["table_id"] == "sales"
        assert span.attributes["chunk_size"] == 5
        assert span.attributes["rows_committed"] == 12
        assert "start_row_id" not in span.attributes

    def test_non_native_values_stringified(self, exporter):
        with trace_operation("cursor.record", confidence=["estimated"]):
            pass

        assert exporter.get_finished_spans()[0].attributes["confidence"] == "['estimated']"

    def test_exception_recorded_and_reraised(self, exporter):
        with pytest.raises(ValueError, match="bad chunk"):
            with trace_operation("import.run"):
                raise ValueError("bad chunk")

        span = exporter.get_finished_spans()[0]
        assert span.attributes["error"] is True
        assert span.attributes["error.type"] == "ValueError"
        assert span.events[0].name == "exception"

    def test_span_event(self, exporter):
        with trace_operation("import.run"):
            add_span_event("chunk.retry", chunk_index=2, delay=1.0)

        event = exporter.get_finished_spans()[0].events[0]
        assert event.name == "chunk.retry"
        assert event.attributes["chunk_index"] == 2

    def test_helpers_ignore_missing_span(self):
        add_span_attributes(status="done")
        add_span_event("orphan")


class TestInitializeTracing:
    """Test tracer provider setup"""

    @pytest.fixture(autouse=True)
    def reset(self):
        yield
        shutdown_tracing()

    def test_initialize_once(self, monkeypatch):
        monkeypatch.delenv("OTLP_ENDPOINT", raising=False)
        monkeypatch.delenv("TRACE_CONSOLE", raising=False)
        with patch("utils.tracing.tracer.trace.set_tracer_provider") as mock_set:
            first = initialize_tracing(service_name="import-tests")
            second = initialize_tracing(service_name="other")

        assert first is second
        assert get_tracer() is first
        mock_set.assert_called_once()

    def test_console_exporter_from_env(self, monkeypatch):
        monkeypatch.setenv("TRACE_CONSOLE", "true")
        monkeypatch.delenv("OTLP_ENDPOINT", raising=False)
        with patch("utils.tracing.tracer.trace.set_tracer_provider"), \
                patch("utils.tracing.tracer.ConsoleSpanExporter") as mock_console:
            initialize_tracing()

        mock_console.assert_called_once()

    def test_shutdown_resets_tracer(self):
        with patch("utils.tracing.tracer.trace.set_tracer_provider"):
            tracer = initialize_tracing()

        shutdown_tracing()

        assert get_tracer() is not tracer

    def test_shutdown_without_init(self):
        shutdown_tracing()
