"""
RowID boundary probing.

Resolves the real RowID high-water mark of a destination table around a
stored estimate, with as few remote existence checks as possible:
expanding strides away from the estimate, then a binary search of the
bracket. The search never leaves the tolerance window; when the boundary
lies outside it the probe reports failure instead of guessing.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any

from opentelemetry import trace

from utils.metrics import ImportMetrics
from utils.retry import RetryPolicy
from utils.tracing import add_span_attributes, trace_operation

from ..config import ROWID_TOLERANCE
from ..errors import LocalPreconditionError, SessionCancelledError, is_transient
from ..remote.client import DestinationClient

logger = logging.getLogger(__name__)

DIRECTION_EXACT = "exact"
DIRECTION_UP = "up"
DIRECTION_DOWN = "down"

FAILURE_TOO_MANY_EXTERNAL_ROWS = "too_many_external_rows"
FAILURE_DESYNC_TOO_LARGE = "desync_too_large"


@dataclass
class ProbeResult:
    """
    Outcome of a boundary probe

    ``resolved_row_id`` is set only when ``within_tolerance`` is True.
    """

    within_tolerance: bool
    resolved_row_id: int | None
    request_count: int
    direction: str
    offset: int | None = None
    failure_reason: str | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class CursorProbe:
    """
    Locates the last existing RowID near an estimate.

    Existence checks are issued one at a time through the shared retry
    policy; the cancel event is checked before each of them.
    """

    def __init__(
        self,
        destination: DestinationClient,
        tolerance: int = ROWID_TOLERANCE,
        policy: RetryPolicy | None = None,
        metrics: ImportMetrics | None = None,
    ):
        if tolerance < 0:
            raise LocalPreconditionError(f"tolerance must be >= 0, got {tolerance}")
        self.destination = destination
        self.tolerance = tolerance
        self.policy = policy or RetryPolicy()
        self.metrics = metrics or ImportMetrics()

    async def probe(self, table_id: str, estimated_row_id: int, cancel_event=None) -> ProbeResult:
        """
        Resolve the RowID boundary around ``estimated_row_id``

        Args:
            table_id: Destination table
            estimated_row_id: Expected last existing RowID
            cancel_event: Object with ``is_set()`` (asyncio.Event, threading.Event)

        Returns:
            ProbeResult
        """
        with trace_operation(
            "cursor.probe",
            kind=trace.SpanKind.CLIENT,
            table_id=table_id,
            estimated_row_id=estimated_row_id,
            tolerance=self.tolerance,
        ):
            session = _ProbeRun(self, table_id, cancel_event)
            try:
                result = await session.run(estimated_row_id)
            finally:
                self.metrics.record_probe(table_id, session.request_count)

            add_span_attributes(
                within_tolerance=result.within_tolerance,
                request_count=result.request_count,
                direction=result.direction,
            )
            if result.within_tolerance:
                logger.info(
                    f"Probe for {table_id}: boundary {result.resolved_row_id} "
                    f"(estimate {estimated_row_id}, direction={result.direction}, "
                    f"{result.request_count} checks)"
                )
            else:
                logger.warning(f"Probe for {table_id} out of tolerance: {result.message}")
            return result


class _ProbeRun:
    """State of a single probe: request counter and existence checks."""

    def __init__(self, probe: CursorProbe, table_id: str, cancel_event):
        self.probe = probe
        self.table_id = table_id
        self.cancel_event = cancel_event
        self.request_count = 0

    async def exists(self, row_id: int) -> bool:
        # RowID 0 is the floor of an empty table
        if row_id <= 0:
            return True
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise SessionCancelledError(f"Probe of {self.table_id} cancelled")

        self.request_count += 1
        return await self.probe.policy.call(
            self.probe.destination.probe_row_exists,
            self.table_id,
            row_id,
            is_retryable=is_transient,
        )

    async def bisect(self, present: int, absent: int) -> int:
        """Last present RowID in (present, absent), given the bracket."""
        while absent - present > 1:
            mid = (present + absent) // 2
            if await self.exists(mid):
                present = mid
            else:
                absent = mid
        return present

    async def run(self, estimate: int) -> ProbeResult:
        tolerance = self.probe.tolerance

        if await self.exists(estimate):
            if not await self.exists(estimate + 1):
                return self._resolved(estimate, estimate, DIRECTION_EXACT)

            present = estimate + 1
            stride = 2
            while present < estimate + tolerance + 1:
                candidate = estimate + min(stride, tolerance + 1)
                if not await self.exists(candidate):
                    boundary = await self.bisect(present, candidate)
                    return self._resolved(boundary, estimate, DIRECTION_UP)
                present = candidate
                stride *= 2

            return ProbeResult(
                within_tolerance=False,
                resolved_row_id=None,
                request_count=self.request_count,
                direction=DIRECTION_UP,
                failure_reason=FAILURE_TOO_MANY_EXTERNAL_ROWS,
                message=(
                    f"More than {tolerance} rows were added after RowID {estimate} "
                    f"outside of tracked imports"
                ),
            )

        absent = estimate
        stride = 1
        while True:
            offset = min(stride, tolerance)
            if offset <= 0:
                break
            candidate = estimate - offset
            if await self.exists(candidate):
                boundary = await self.bisect(max(candidate, 0), absent)
                return self._resolved(boundary, estimate, DIRECTION_DOWN)
            absent = candidate
            if offset == tolerance:
                break
            stride *= 2

        return ProbeResult(
            within_tolerance=False,
            resolved_row_id=None,
            request_count=self.request_count,
            direction=DIRECTION_DOWN,
            failure_reason=FAILURE_DESYNC_TOO_LARGE,
            message=(
                f"No row found within {tolerance} RowIDs below estimate {estimate}"
            ),
        )

    def _resolved(self, boundary: int, estimate: int, direction: str) -> ProbeResult:
        return ProbeResult(
            within_tolerance=True,
            resolved_row_id=boundary,
            request_count=self.request_count,
            direction=direction,
            offset=boundary - estimate,
        )
