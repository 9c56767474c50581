"""
Destination capabilities: client interface, filter expressions and
export-job backed reads.
"""

from .client import DeleteOutcome, DestinationClient, ImportMode, ImportOutcome, Row
from .filters import FilterExpression, equals_filter, in_filter, row_id_filter
from .jobs import BulkExportDestination, ExportJobStatus, parse_export_payload

__all__ = [
    "BulkExportDestination",
    "DeleteOutcome",
    "DestinationClient",
    "ExportJobStatus",
    "FilterExpression",
    "ImportMode",
    "ImportOutcome",
    "Row",
    "equals_filter",
    "in_filter",
    "parse_export_payload",
    "row_id_filter",
]
