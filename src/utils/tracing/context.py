"""
Span helpers.

Context managers for creating spans and annotating the current span without
passing span references through the import pipeline.
"""

from contextlib import contextmanager

from opentelemetry import trace

from .tracer import get_tracer

_NATIVE_TYPES = (str, bool, int, float)


def _attribute_value(value):
    return value if isinstance(value, _NATIVE_TYPES) else str(value)


@contextmanager
def trace_operation(
    operation_name: str,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    **attributes
):
    """
    Context manager for tracing operations.

    Records the exception on the span and re-raises it.

    Args:
        operation_name: Name of the operation being traced
        kind: Span kind (INTERNAL, CLIENT, ...)
        **attributes: Attributes set on the span at start

    Example:
        >>> with trace_operation("import.chunk", table_id="sales") as span:
        ...     outcome = await client.import_rows("sales", chunk)
        ...     span.set_attribute("rows", outcome.imported_count)
    """
    tracer = get_tracer()

    with tracer.start_as_current_span(operation_name, kind=kind) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, _attribute_value(value))

        try:
            yield span
        except Exception as e:
            span.set_attribute("error", True)
            span.set_attribute("error.type", type(e).__name__)
            span.record_exception(e)
            raise


def add_span_attributes(**attributes) -> None:
    current_span = trace.get_current_span()
    if current_span.is_recording():
        for key, value in attributes.items():
            current_span.set_attribute(key, _attribute_value(value))


def add_span_event(name: str, **attributes) -> None:
    """
    Add an event to the current span.

    Args:
        name: Event name (e.g. "chunk.retry")
        **attributes: Event attributes
    """
    current_span = trace.get_current_span()
    if current_span.is_recording():
        current_span.add_event(
            name, attributes={k: _attribute_value(v) for k, v in attributes.items()}
        )
