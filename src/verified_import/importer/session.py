"""
End-to-end verified import of one file into one destination table.

A session picks the matching column, checks the RowID cursor, sends a
small trial slice, reads it back and reconciles it. Only a clean trial
lets the remainder be imported; a trial with critical anomalies is rolled
back when the import mode allows it.
"""

import asyncio
import logging
import os
import socket
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from opentelemetry import trace

from utils.metrics import ImportMetrics
from utils.tracing import add_span_attributes, trace_operation

from ..config import ImportSettings
from ..cursor.probe import CursorProbe
from ..cursor.state import RowCursorStore
from ..cursor.sync import SyncCheckResult, check_sync_before_import
from ..errors import SessionCancelledError, is_transient
from ..matching.selector import ColumnMeta, MatchingColumnResult, MatchingColumnSelector
from ..remote.client import DestinationClient, ImportMode
from ..remote.filters import ROW_ID_COLUMN, in_filter
from ..rollback.executor import RollbackExecutor, RollbackResult
from ..rollback.rules import can_rollback
from ..verification.anomalies import AnomalyThresholds
from ..verification.models import VerificationConfig, VerificationResult, build_sent_rows
from ..verification.reconciler import Reconciler, match_key
from .orchestrator import ChunkedImportOrchestrator, ImportSessionResult, ProgressListener
from .progress import SessionState

logger = logging.getLogger(__name__)

# Rows inspected when choosing the matching column
SELECTION_SAMPLE_SIZE = 1000


class SessionStatus(str, Enum):
    COMPLETED = "completed"
    TRIAL_FAILED = "trial-failed"
    NEEDS_RESYNC = "needs-resync"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


@dataclass
class SessionOutcome:
    """Everything a session did, step by step; absent steps are None."""

    status: SessionStatus
    table_id: str
    message: str
    matching: MatchingColumnResult | None = None
    sync: SyncCheckResult | None = None
    trial: ImportSessionResult | None = None
    verification: VerificationResult | None = None
    rollback: RollbackResult | None = None
    remainder: ImportSessionResult | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def rows_committed(self) -> int:
        committed = sum(r.rows_committed for r in (self.trial, self.remainder) if r is not None)
        if self.rollback is not None and self.rollback.success and self.trial is not None:
            committed -= min(self.rollback.deleted_rows, self.trial.rows_committed)
        return committed

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "table_id": self.table_id,
            "message": self.message,
            "rows_committed": self.rows_committed,
            "matching": self.matching.to_dict() if self.matching else None,
            "sync": self.sync.to_dict() if self.sync else None,
            "trial": self.trial.to_dict() if self.trial else None,
            "verification": self.verification.to_dict() if self.verification else None,
            "rollback": self.rollback.to_dict() if self.rollback else None,
            "remainder": self.remainder.to_dict() if self.remainder else None,
            "warnings": list(self.warnings),
        }


def _default_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


class ImportSession:
    """
    Runs trial import, verification and the chunked remainder for a table.

    Holds the table lease for the whole run so that no other session moves
    the RowID cursor in between.
    """

    def __init__(
        self,
        destination: DestinationClient,
        cursor_store: RowCursorStore,
        settings: ImportSettings | None = None,
        on_progress: ProgressListener | None = None,
        metrics: ImportMetrics | None = None,
        owner: str | None = None,
        sleep=asyncio.sleep,
    ):
        self.destination = destination
        self.cursor_store = cursor_store
        self.settings = settings or ImportSettings()
        self.metrics = metrics or ImportMetrics()
        self.owner = owner or _default_owner()
        self._sleep = sleep

        self.policy = self.settings.retry_policy()
        self.selector = MatchingColumnSelector()
        self.probe = CursorProbe(
            destination,
            tolerance=self.settings.rowid_tolerance,
            policy=self.policy,
            metrics=self.metrics,
        )
        self.orchestrator = ChunkedImportOrchestrator(
            policy=self.policy,
            cursor_store=cursor_store,
            on_progress=on_progress,
            metrics=self.metrics,
        )
        self.reconciler = Reconciler(
            thresholds=AnomalyThresholds(
                truncation_chars=self.settings.truncation_threshold,
                date_shift_days=float(self.settings.date_shift_threshold_days),
            ),
            metrics=self.metrics,
        )
        self.rollback_executor = RollbackExecutor(destination, metrics=self.metrics)

    async def run(
        self,
        table_id: str,
        rows: Sequence[Mapping[str, Any]],
        remote_columns: Sequence[ColumnMeta] | None = None,
        mode: ImportMode = ImportMode.APPEND,
        preferred_column: str | None = None,
        cancel_event=None,
    ) -> SessionOutcome:
        """
        Import ``rows`` into ``table_id`` behind a verified trial.

        Args:
            table_id: Destination table
            rows: Parsed rows, in file order
            remote_columns: Destination column metadata, when known
            mode: Import mode of the trial; the remainder is always appended
            preferred_column: Matching column remembered from a previous import
            cancel_event: Object with ``is_set()``, checked between steps

        Returns:
            SessionOutcome

        Raises:
            TableLeaseError: If another session holds the table
            LocalPreconditionError: On invalid inputs, before any remote call
        """
        mode = ImportMode(mode)
        with trace_operation(
            "import.session",
            kind=trace.SpanKind.INTERNAL,
            table_id=table_id,
            mode=mode.value,
            total_rows=len(rows),
        ):
            matching = self.selector.select(
                list(rows[:SELECTION_SAMPLE_SIZE]), remote_columns, preferred_column
            )
            outcome = SessionOutcome(
                status=SessionStatus.ABORTED,
                table_id=table_id,
                message="",
                matching=matching,
                warnings=list(matching.warnings),
            )
            for warning in matching.warnings:
                logger.warning(f"{table_id}: {warning}")

            lease = self.cursor_store.acquire_lease(table_id, self.owner, self.settings.lease_ttl)
            try:
                await self._run_steps(outcome, rows, mode, cancel_event)
            except SessionCancelledError as e:
                outcome.status = SessionStatus.CANCELLED
                outcome.message = str(e) or "Session cancelled"
            finally:
                self.cursor_store.release_lease(lease)

            add_span_attributes(status=outcome.status.value, rows_committed=outcome.rows_committed)
            log = logger.info if outcome.status is SessionStatus.COMPLETED else logger.warning
            log(f"Import session for {table_id} ended {outcome.status.value}: {outcome.message}")
            return outcome

    async def _run_steps(
        self,
        outcome: SessionOutcome,
        rows: Sequence[Mapping[str, Any]],
        mode: ImportMode,
        cancel_event,
    ) -> None:
        table_id = outcome.table_id
        column = outcome.matching.column if outcome.matching else None

        sync = await check_sync_before_import(
            self.cursor_store, self.probe, table_id, cancel_event=cancel_event
        )
        outcome.sync = sync
        if sync.needs_resync:
            outcome.status = SessionStatus.NEEDS_RESYNC
            outcome.message = sync.message
            return

        start_row_id = sync.actual_start_row_id
        trial_size = min(self.settings.trial_sample_size, len(rows))
        trial_rows = rows[:trial_size]
        remaining_rows = rows[trial_size:]
        remainder_start = start_row_id

        if trial_rows:
            trial = await self.orchestrator.run(
                trial_rows,
                self._import_fn(table_id, mode, column),
                chunk_size=self.settings.chunk_size,
                table_id=table_id,
                start_row_id=start_row_id,
                cancel_event=cancel_event,
            )
            outcome.trial = trial
            if not trial.succeeded:
                outcome.status = _status_for(trial)
                outcome.message = f"Trial import {trial.status.value}"
                return

            await self._sleep(self.settings.read_delay)
            if cancel_event is not None and cancel_event.is_set():
                raise SessionCancelledError("Session cancelled after the trial import")

            verification = await self._verify(table_id, trial_rows, column, start_row_id)
            outcome.verification = verification
            outcome.warnings.extend(verification.warnings)

            if not verification.success:
                outcome.status = SessionStatus.TRIAL_FAILED
                outcome.message = (
                    f"Trial verification found {len(verification.critical_anomalies)} "
                    f"critical anomaly(ies)"
                )
                await self._undo_trial(outcome, trial_rows, mode, column)
                return

            if start_row_id is not None:
                remainder_start = start_row_id + trial.rows_committed
            # Rows after a truncating or upserting trial must not repeat that effect
            mode = ImportMode.APPEND

        if not remaining_rows:
            outcome.status = SessionStatus.COMPLETED
            outcome.message = f"{len(rows)} row(s) imported and verified"
            return

        if cancel_event is not None and cancel_event.is_set():
            raise SessionCancelledError("Session cancelled before the remainder import")

        remainder = await self.orchestrator.run(
            remaining_rows,
            self._import_fn(table_id, mode, column),
            chunk_size=self.settings.chunk_size,
            table_id=table_id,
            start_row_id=remainder_start,
            cancel_event=cancel_event,
        )
        outcome.remainder = remainder
        if remainder.succeeded:
            outcome.status = SessionStatus.COMPLETED
            outcome.message = f"{len(rows)} row(s) imported"
        else:
            outcome.status = _status_for(remainder)
            outcome.message = (
                f"Import {remainder.status.value} after {outcome.rows_committed}/{len(rows)} row(s)"
            )

    async def _verify(
        self,
        table_id: str,
        trial_rows: Sequence[Mapping[str, Any]],
        column: str | None,
        start_row_id: int | None,
    ) -> VerificationResult:
        sent_rows = build_sent_rows(trial_rows)

        if column is None and start_row_id is not None:
            async def fetch_by_row_ids(row_ids):
                expression = in_filter(ROW_ID_COLUMN, [str(r) for r in row_ids])
                return await self.policy.call(
                    self.destination.fetch_rows_by_filter,
                    table_id,
                    expression,
                    is_retryable=is_transient,
                )

            return await self.reconciler.verify_by_row_id(
                sent_rows, start_row_id, fetch_by_row_ids, table_id=table_id
            )

        async def fetch_received(keys):
            return await self.policy.call(
                self.destination.fetch_rows_by_filter,
                table_id,
                in_filter(column, keys),
                is_retryable=is_transient,
            )

        return await self.reconciler.verify(
            VerificationConfig(
                sent_rows=sent_rows,
                matching_column=column,
                fetch_received=fetch_received,
                table_id=table_id,
            )
        )

    async def _undo_trial(
        self,
        outcome: SessionOutcome,
        trial_rows: Sequence[Mapping[str, Any]],
        mode: ImportMode,
        column: str | None,
    ) -> None:
        allowed, reason = can_rollback(mode)
        if not allowed:
            outcome.warnings.append(f"Trial not rolled back: {reason}")
            return
        if column is None:
            outcome.warnings.append("Trial not rolled back: no matching column to identify its rows")
            return

        values = [key for key in (match_key(row.get(column)) for row in trial_rows) if key]
        if not values:
            outcome.warnings.append(f"Trial not rolled back: no values in column {column}")
            return
        if len(values) < len(trial_rows):
            outcome.warnings.append(
                f"{len(trial_rows) - len(values)} trial row(s) with an empty {column} "
                f"cannot be rolled back and need manual cleanup"
            )

        outcome.rollback = await self.rollback_executor.rollback(outcome.table_id, column, values)
        if not outcome.rollback.success:
            outcome.warnings.append(
                f"Trial rollback failed, {len(outcome.rollback.remaining_values)} value(s) "
                f"need manual cleanup"
            )

    def _import_fn(self, table_id: str, mode: ImportMode, column: str | None):
        matching_columns = [column] if column else None

        async def import_chunk(chunk):
            return await self.destination.import_rows(
                table_id, list(chunk), mode=mode, matching_columns=matching_columns
            )

        return import_chunk


def _status_for(result: ImportSessionResult) -> SessionStatus:
    if result.status is SessionState.CANCELLED:
        return SessionStatus.CANCELLED
    return SessionStatus.ABORTED
