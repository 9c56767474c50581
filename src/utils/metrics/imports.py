"""
Metrics for verified bulk imports.

Tracks chunk uploads, retries, verification anomalies, RowID probing and
rollbacks per destination table.
"""

import logging

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from .registry import get_or_create_metric

logger = logging.getLogger(__name__)


class ImportMetrics:
    """
    Metrics for verified import sessions

    Every metric is registered through get_or_create_metric, so any number
    of components may instantiate this class against the same registry.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize import metrics

        Args:
            registry: Custom Prometheus registry (default: global REGISTRY)
        """
        self.registry = registry or REGISTRY
        r = self.registry

        self.chunks_total = get_or_create_metric(
            lambda: Counter(
                "import_chunks_total",
                "Chunks sent to the destination, by final status",
                ["table_id", "status"],
                registry=r,
            ),
            "import_chunks_total",
            r,
        )
        self.rows_imported_total = get_or_create_metric(
            lambda: Counter(
                "import_rows_imported_total",
                "Rows confirmed as committed by the destination",
                ["table_id"],
                registry=r,
            ),
            "import_rows_imported_total",
            r,
        )
        self.chunk_retries_total = get_or_create_metric(
            lambda: Counter(
                "import_chunk_retries_total",
                "Chunk upload retries after transient failures",
                ["table_id"],
                registry=r,
            ),
            "import_chunk_retries_total",
            r,
        )
        self.anomalies_total = get_or_create_metric(
            lambda: Counter(
                "import_anomalies_total",
                "Anomalies detected during post-import verification",
                ["table_id", "anomaly_type", "level"],
                registry=r,
            ),
            "import_anomalies_total",
            r,
        )
        self.verification_duration_seconds = get_or_create_metric(
            lambda: Histogram(
                "import_verification_duration_seconds",
                "Duration of post-import verification",
                ["table_id"],
                buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120),
                registry=r,
            ),
            "import_verification_duration_seconds",
            r,
        )
        self.probe_requests_total = get_or_create_metric(
            lambda: Counter(
                "import_probe_requests_total",
                "RowID existence checks issued while probing the cursor",
                ["table_id"],
                registry=r,
            ),
            "import_probe_requests_total",
            r,
        )
        self.rollbacks_total = get_or_create_metric(
            lambda: Counter(
                "import_rollbacks_total",
                "Rollback attempts, by outcome",
                ["table_id", "status"],
                registry=r,
            ),
            "import_rollbacks_total",
            r,
        )
        self.cursor_row_id = get_or_create_metric(
            lambda: Gauge(
                "import_cursor_row_id",
                "Last recorded RowID high-water mark",
                ["table_id"],
                registry=r,
            ),
            "import_cursor_row_id",
            r,
        )

    def record_chunk(self, table_id: str, status: str, rows: int = 0, attempts: int = 1) -> None:
        """
        Record the final outcome of one chunk

        Args:
            table_id: Destination table
            status: "committed" or "failed"
            rows: Rows committed by this chunk
            attempts: Attempts used, including the first
        """
        self.chunks_total.labels(table_id=table_id, status=status).inc()
        if rows:
            self.rows_imported_total.labels(table_id=table_id).inc(rows)
        if attempts > 1:
            self.chunk_retries_total.labels(table_id=table_id).inc(attempts - 1)

    def record_anomaly(self, table_id: str, anomaly_type: str, level: str) -> None:
        self.anomalies_total.labels(
            table_id=table_id, anomaly_type=anomaly_type, level=level
        ).inc()

    def record_verification(self, table_id: str, duration: float) -> None:
        self.verification_duration_seconds.labels(table_id=table_id).observe(duration)

    def record_probe(self, table_id: str, request_count: int) -> None:
        self.probe_requests_total.labels(table_id=table_id).inc(request_count)

    def record_rollback(self, table_id: str, success: bool) -> None:
        status = "success" if success else "failed"
        self.rollbacks_total.labels(table_id=table_id, status=status).inc()

    def record_cursor(self, table_id: str, row_id: int) -> None:
        self.cursor_row_id.labels(table_id=table_id).set(row_id)
