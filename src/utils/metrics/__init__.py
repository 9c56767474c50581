"""
Prometheus metrics for the import tooling

Usage:
    from utils.metrics import ImportMetrics

    metrics = ImportMetrics()
    metrics.record_chunk("sales", status="committed", rows=5000, attempts=1)
    metrics.record_anomaly("sales", anomaly_type="truncation", level="warning")
"""

from .imports import ImportMetrics
from .registry import get_or_create_metric

__all__ = [
    "ImportMetrics",
    "get_or_create_metric",
]
