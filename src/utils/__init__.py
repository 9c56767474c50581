"""
Shared utilities for verified imports

Provides:
- logging: JSON/console formatters and context loggers
- metrics: Prometheus import metrics
- tracing: OpenTelemetry setup and span helpers
- retry: async retry and bounded polling
"""

__version__ = "1.0.0"
__all__ = ["logging", "metrics", "retry", "tracing"]
