"""
Capabilities the import pipeline needs from a destination.

The destination platform's API is a black box; an adapter implements
DestinationClient on top of it and the pipeline only ever talks to this
interface.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .filters import FilterExpression

Row = dict[str, Any]


class ImportMode(str, Enum):
    APPEND = "append"
    TRUNCATE_ADD = "truncateadd"
    UPDATE_ADD = "updateadd"
    DELETE_UPSERT = "deleteupsert"
    ONLY_ADD = "onlyadd"


IMPORT_STATUS_SUCCESS = "success"
IMPORT_STATUS_ERROR = "error"


@dataclass
class ImportOutcome:
    """Result of one import call."""

    status: str
    imported_count: int
    errors: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == IMPORT_STATUS_SUCCESS


@dataclass
class DeleteOutcome:
    deleted_count: int


class DestinationClient(ABC):
    """
    Remote analytics destination

    Implementations raise TransientRemoteError (or a network exception) for
    retryable failures and RemoteRejectedError when the destination refuses
    the request.
    """

    @abstractmethod
    async def import_rows(
        self,
        table_id: str,
        rows: Sequence[Row],
        mode: ImportMode = ImportMode.APPEND,
        matching_columns: Sequence[str] | None = None,
    ) -> ImportOutcome:
        """Write ``rows`` in a single remote call."""

    @abstractmethod
    async def fetch_rows_by_filter(self, table_id: str, filter_expression: FilterExpression) -> list[Row]:
        """Read back the rows matching ``filter_expression`` (RowID included)."""

    @abstractmethod
    async def delete_rows_by_filter(self, table_id: str, filter_expression: FilterExpression) -> DeleteOutcome:
        """Delete the rows matching ``filter_expression``."""

    @abstractmethod
    async def probe_row_exists(self, table_id: str, row_id: int) -> bool:
        """Point lookup of a RowID."""
