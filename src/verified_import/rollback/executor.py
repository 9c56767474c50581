"""
Undo a trial import by deleting its rows.

The delete is issued exactly once. Its outcome is only trusted when the
destination confirms it; any doubt leaves every value in
``remaining_values`` for manual cleanup.
"""

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from opentelemetry import trace

from utils.metrics import ImportMetrics
from utils.tracing import add_span_attributes, trace_operation

from ..errors import LocalPreconditionError
from ..remote.client import DestinationClient
from ..remote.filters import in_filter

logger = logging.getLogger(__name__)


@dataclass
class RollbackResult:
    success: bool
    deleted_rows: int
    duration: float
    error_message: str | None = None
    remaining_values: list[Any] = field(default_factory=list)
    filter_expression: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "deleted_rows": self.deleted_rows,
            "duration": self.duration,
            "error_message": self.error_message,
            "remaining_values": list(self.remaining_values),
            "filter_expression": self.filter_expression,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RollbackResult":
        return cls(
            success=data["success"],
            deleted_rows=data.get("deleted_rows", 0),
            duration=data.get("duration", 0.0),
            error_message=data.get("error_message"),
            remaining_values=list(data.get("remaining_values", [])),
            filter_expression=data.get("filter_expression"),
        )


class RollbackExecutor:
    """Deletes previously imported rows identified by matching-column values."""

    def __init__(
        self,
        destination: DestinationClient,
        clock: Callable[[], float] = time.monotonic,
        metrics: ImportMetrics | None = None,
    ):
        self.destination = destination
        self._clock = clock
        self.metrics = metrics or ImportMetrics()

    async def rollback(
        self,
        table_id: str,
        matching_column: str | None,
        matching_values: Sequence[Any],
    ) -> RollbackResult:
        """
        Delete the rows whose matching value is in ``matching_values``.

        Never retried: a delete with unknown outcome is reported as a
        failure with every value left to clean up.

        Args:
            table_id: Destination table
            matching_column: Identity column
            matching_values: Values of the rows to delete

        Returns:
            RollbackResult

        Raises:
            LocalPreconditionError: If no column or no values are given
        """
        if not matching_column:
            raise LocalPreconditionError("Rollback needs a matching column")

        values = [v for v in matching_values if v is not None and str(v).strip()]
        if not values:
            raise LocalPreconditionError("Rollback needs at least one matching value")
        skipped = len(matching_values) - len(values)
        if skipped:
            logger.warning(f"Ignoring {skipped} blank matching value(s) in rollback of {table_id}")
        filter_expression = in_filter(matching_column, values)

        with trace_operation(
            "rollback.delete",
            kind=trace.SpanKind.CLIENT,
            table_id=table_id,
            matching_column=matching_column,
            values=len(values),
        ):
            started = self._clock()
            sql = filter_expression.to_sql()
            logger.info(f"Rolling back {len(values)} row(s) from {table_id} where {sql}")

            try:
                outcome = await self.destination.delete_rows_by_filter(table_id, filter_expression)
            except Exception as e:
                duration = self._clock() - started
                logger.error(
                    f"Rollback of {table_id} failed, {len(values)} value(s) need manual cleanup: "
                    f"{type(e).__name__}: {e}"
                )
                self.metrics.record_rollback(table_id, success=False)
                add_span_attributes(success=False)
                return RollbackResult(
                    success=False,
                    deleted_rows=0,
                    duration=duration,
                    error_message=f"{type(e).__name__}: {e}",
                    remaining_values=list(values),
                    filter_expression=sql,
                )

            duration = self._clock() - started
            expected = len(filter_expression.values)
            deleted = outcome.deleted_count

            if deleted < expected:
                message = (
                    f"Destination confirmed {deleted} deletion(s) for {expected} value(s); "
                    f"remaining rows could not be confirmed deleted"
                )
                logger.error(f"Rollback of {table_id} incomplete: {message}")
                self.metrics.record_rollback(table_id, success=False)
                add_span_attributes(success=False, deleted_rows=deleted)
                return RollbackResult(
                    success=False,
                    deleted_rows=deleted,
                    duration=duration,
                    error_message=message,
                    remaining_values=list(values),
                    filter_expression=sql,
                )

            logger.info(f"Rollback of {table_id} deleted {deleted} row(s) in {duration:.2f}s")
            self.metrics.record_rollback(table_id, success=True)
            add_span_attributes(success=True, deleted_rows=deleted)
            return RollbackResult(
                success=True,
                deleted_rows=deleted,
                duration=duration,
                filter_expression=sql,
            )
