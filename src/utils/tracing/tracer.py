"""
Tracer initialization for OpenTelemetry.

Spans are exported over OTLP only when a collector endpoint is configured
(argument or OTLP_ENDPOINT); otherwise the global no-op provider stays in
place and tracing costs nothing.
"""

import logging
import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "verified-import"

_tracer: trace.Tracer | None = None
_provider: TracerProvider | None = None


def initialize_tracing(
    service_name: str = DEFAULT_SERVICE_NAME,
    otlp_endpoint: str | None = None,
    console_export: bool = False,
    sampling_rate: float = 1.0,
) -> trace.Tracer:
    """
    Initialize distributed tracing with OpenTelemetry.

    Args:
        service_name: Name of the service for identification
        otlp_endpoint: OTLP collector endpoint (default: OTLP_ENDPOINT env var)
        console_export: Also export spans to stdout (or TRACE_CONSOLE=true)
        sampling_rate: Sampling rate 0.0-1.0

    Returns:
        Configured tracer instance
    """
    global _tracer, _provider

    if _provider is not None:
        logger.warning("Tracing already initialized, returning existing tracer")
        return _tracer

    provider = TracerProvider(
        resource=Resource(attributes={SERVICE_NAME: service_name}),
        sampler=TraceIdRatioBased(sampling_rate),
    )

    exporters = []
    endpoint = otlp_endpoint or os.getenv("OTLP_ENDPOINT")
    if endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True))
        )
        exporters.append("OTLP")
        logger.info(f"OTLP exporter configured: {endpoint}")

    if console_export or os.getenv("TRACE_CONSOLE", "").lower() == "true":
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        exporters.append("Console")

    if not exporters:
        logger.warning("No trace exporters configured, spans will be dropped")

    trace.set_tracer_provider(provider)
    _provider = provider
    _tracer = trace.get_tracer(service_name)

    logger.info(
        f"Tracing initialized: {service_name} "
        f"(exporters: {', '.join(exporters) or 'none'}, sampling: {sampling_rate})"
    )
    return _tracer


def get_tracer() -> trace.Tracer:
    """
    Get the tracer used by the import components.

    Falls back to the global provider (a no-op unless an application
    configured one) when initialize_tracing was never called.
    """
    if _tracer is not None:
        return _tracer
    return trace.get_tracer(DEFAULT_SERVICE_NAME)


def shutdown_tracing() -> None:
    """Flush pending spans and shut the provider down."""
    global _tracer, _provider

    if _provider is None:
        return
    try:
        _provider.shutdown()
        logger.info("Tracing shutdown complete")
    finally:
        _provider = None
        _tracer = None
