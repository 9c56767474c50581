"""
RowID cursor tracking: persistent store, boundary probe and pre-import sync.
"""

from .probe import CursorProbe, ProbeResult
from .state import CursorConfidence, RowCursorStore, TableLease, TableRowCursor
from .sync import SyncCheckResult, calculate_end_row_id, check_sync_before_import

__all__ = [
    "CursorConfidence",
    "CursorProbe",
    "ProbeResult",
    "RowCursorStore",
    "SyncCheckResult",
    "TableLease",
    "TableRowCursor",
    "calculate_end_row_id",
    "check_sync_before_import",
]
