"""
Reads backed by asynchronous bulk-export jobs.

Destinations that only expose reads as export jobs (submit, poll status,
download) inherit from BulkExportDestination: the job lifecycle is folded
into the single blocking ``fetch_rows_by_filter`` capability, polled with
the shared RetryPolicy.
"""

import csv
import io
import json
import logging
from abc import abstractmethod
from dataclasses import dataclass
from typing import Any

from opentelemetry import trace

from utils.retry import PollTimeoutError, RetryPolicy
from utils.tracing import add_span_attributes, trace_operation

from ..errors import JobTimeoutError, RemoteRejectedError, is_transient
from .client import DestinationClient, Row
from .filters import FilterExpression, row_id_filter

logger = logging.getLogger(__name__)

JOB_CODE_COMPLETED = "1004"
JOB_CODE_FAILED = "1003"

FORMAT_JSON = "json"
FORMAT_CSV = "csv"


@dataclass
class ExportJobStatus:
    job_id: str
    code: str
    download_ref: str | None = None
    detail: Any = None

    @property
    def completed(self) -> bool:
        return self.code == JOB_CODE_COMPLETED

    @property
    def failed(self) -> bool:
        return self.code == JOB_CODE_FAILED

    @property
    def terminal(self) -> bool:
        return self.completed or self.failed


def parse_export_payload(payload: str | bytes, fmt: str = FORMAT_JSON) -> list[Row]:
    """
    Decode a downloaded export into rows

    JSON payloads may be a bare list or an object with a ``data`` list;
    CSV payloads need a header line.

    Raises:
        RemoteRejectedError: If the payload cannot be decoded
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8-sig")

    if not payload.strip():
        return []

    if fmt == FORMAT_CSV:
        reader = csv.DictReader(io.StringIO(payload))
        return [dict(row) for row in reader]

    if fmt != FORMAT_JSON:
        raise ValueError(f"Unsupported export format: {fmt}")

    try:
        document = json.loads(payload)
    except json.JSONDecodeError as e:
        raise RemoteRejectedError(f"Export payload is not valid JSON: {e}") from e

    if isinstance(document, dict):
        document = document.get("data", [])
    if not isinstance(document, list):
        raise RemoteRejectedError("Export payload has no row list")
    return [dict(row) for row in document]


class BulkExportDestination(DestinationClient):
    """
    Destination whose reads go through export jobs

    Subclasses implement job submission, status and download; this class
    provides ``fetch_rows_by_filter`` and ``probe_row_exists``.
    """

    export_format = FORMAT_JSON

    def __init__(self, policy: RetryPolicy | None = None):
        self.policy = policy or RetryPolicy()

    @abstractmethod
    async def create_export_job(self, table_id: str, filter_expression: FilterExpression) -> str:
        """Submit an export of the filtered rows; returns the job id."""

    @abstractmethod
    async def get_export_job(self, job_id: str) -> ExportJobStatus:
        """Current status of an export job."""

    @abstractmethod
    async def download_export(self, job: ExportJobStatus) -> str | bytes:
        """Payload of a completed export job."""

    async def wait_for_job(self, job_id: str) -> ExportJobStatus:
        """
        Poll an export job until it reaches a terminal state

        Raises:
            JobTimeoutError: Job still running after ``policy.max_polls`` polls
            RemoteRejectedError: Job failed on the destination
        """
        try:
            status = await self.policy.poll(
                lambda: self.policy.call(self.get_export_job, job_id, is_retryable=is_transient),
                is_done=lambda s: s.terminal,
            )
        except PollTimeoutError as e:
            raise JobTimeoutError(job_id, e.attempts) from e

        if status.failed:
            raise RemoteRejectedError(f"Export job {job_id} failed", code=status.code)
        return status

    async def fetch_rows_by_filter(self, table_id: str, filter_expression: FilterExpression) -> list[Row]:
        with trace_operation(
            "remote.fetch",
            kind=trace.SpanKind.CLIENT,
            table_id=table_id,
            filter_values=len(filter_expression.values),
        ):
            job_id = await self.policy.call(
                self.create_export_job, table_id, filter_expression, is_retryable=is_transient
            )
            logger.debug(f"Export job {job_id} submitted for {table_id}")

            status = await self.wait_for_job(job_id)
            payload = await self.policy.call(self.download_export, status, is_retryable=is_transient)
            rows = parse_export_payload(payload, self.export_format)

            add_span_attributes(rows=len(rows))
            logger.info(f"Fetched {len(rows)} row(s) from {table_id} via export job {job_id}")
            return rows

    async def probe_row_exists(self, table_id: str, row_id: int) -> bool:
        rows = await self.fetch_rows_by_filter(table_id, row_id_filter(row_id))
        return len(rows) > 0
