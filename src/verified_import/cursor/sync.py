"""
Pre-import cursor synchronization.

Before an append import, the stored RowID cursor is checked against the
destination: a small drift is recalibrated automatically, anything beyond
the probe tolerance requires the operator to resync by hand.
"""

import logging
from dataclasses import dataclass
from typing import Any

from .probe import CursorProbe, ProbeResult
from .state import CursorConfidence, RowCursorStore

logger = logging.getLogger(__name__)


@dataclass
class SyncCheckResult:
    """
    Instructions for the import session

    - success: start at ``actual_start_row_id``
    - needs_resync: ask the operator for the current last RowID
    """

    success: bool
    needs_resync: bool
    message: str
    estimated_start_row_id: int | None = None
    actual_start_row_id: int | None = None
    probe_result: ProbeResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "needs_resync": self.needs_resync,
            "message": self.message,
            "estimated_start_row_id": self.estimated_start_row_id,
            "actual_start_row_id": self.actual_start_row_id,
            "probe_result": self.probe_result.to_dict() if self.probe_result else None,
        }


async def check_sync_before_import(
    store: RowCursorStore,
    probe: CursorProbe,
    table_id: str,
    cancel_event=None,
) -> SyncCheckResult:
    """
    Verify the stored cursor of ``table_id`` against the destination

    A resolved boundary is written back with ``probed`` confidence.

    Args:
        store: Cursor store
        probe: Boundary probe bound to the destination
        table_id: Destination table
        cancel_event: Optional cancellation event

    Returns:
        SyncCheckResult
    """
    cursor = store.get(table_id)
    if cursor is None:
        logger.info(f"No RowID cursor for {table_id}: manual resync required")
        return SyncCheckResult(
            success=False,
            needs_resync=True,
            message=f"First import into {table_id}: enter the current last RowID",
        )

    estimated_start = cursor.estimated_max_row_id + 1
    result = await probe.probe(table_id, cursor.estimated_max_row_id, cancel_event=cancel_event)

    if not result.within_tolerance:
        return SyncCheckResult(
            success=False,
            needs_resync=True,
            message=result.message or f"RowID cursor of {table_id} is out of sync",
            estimated_start_row_id=estimated_start,
            probe_result=result,
        )

    store.record_after_import(
        table_id,
        result.resolved_row_id,
        confidence=CursorConfidence.PROBED,
        source="probe",
    )

    offset = result.offset or 0
    if offset == 0:
        message = "RowID cursor in sync"
    else:
        direction = "added outside tracked imports" if offset > 0 else "missing"
        message = f"{abs(offset)} row(s) {direction}: cursor recalibrated"
        logger.warning(f"{table_id}: {message}")

    return SyncCheckResult(
        success=True,
        needs_resync=False,
        message=message,
        estimated_start_row_id=estimated_start,
        actual_start_row_id=result.resolved_row_id + 1,
        probe_result=result,
    )


def calculate_end_row_id(start_row_id: int, row_count: int) -> int:
    """Last RowID of ``row_count`` rows inserted from ``start_row_id``."""
    return start_row_id + row_count - 1
