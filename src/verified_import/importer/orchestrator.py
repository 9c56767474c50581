"""
Chunked import with per-chunk retry.

Splits the rows into fixed-size chunks and sends them strictly in order,
each as one remote import call. Transient failures are retried with the
shared fixed-delay policy; a rejected chunk aborts the session at once.
The result always states how many rows were confirmed committed.
"""

import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from opentelemetry import trace

from utils.logging import ContextLogger
from utils.metrics import ImportMetrics
from utils.retry import RetryPolicy
from utils.tracing import add_span_attributes, add_span_event, trace_operation

from ..config import CHUNK_SIZE
from ..cursor.state import CursorConfidence, RowCursorStore
from ..errors import (
    ErrorCategory,
    LocalPreconditionError,
    RemoteRejectedError,
    classify_error,
    is_transient,
)
from ..remote.client import ImportOutcome
from .progress import ChunkPosition, ChunkProgress, SessionState

logger = logging.getLogger(__name__)

ImportFn = Callable[[Sequence[Mapping[str, Any]]], Awaitable[ImportOutcome]]
ProgressListener = Callable[[ChunkProgress], None]


@dataclass
class ChunkFailure:
    """Where and why a session stopped."""

    chunk_index: int
    first_row: int
    last_row: int
    attempts: int
    error: str
    category: ErrorCategory

    def to_dict(self) -> dict[str, Any]:
        return {
            "chunk_index": self.chunk_index,
            "first_row": self.first_row,
            "last_row": self.last_row,
            "attempts": self.attempts,
            "error": self.error,
            "category": self.category.value,
        }


@dataclass
class ImportSessionResult:
    status: SessionState
    total_rows: int
    rows_committed: int
    chunks_committed: int
    total_chunks: int
    duration: float = 0.0
    failed_chunk: ChunkFailure | None = None
    last_row_id: int | None = None
    transitions: list[SessionState] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status is SessionState.DONE

    @property
    def partial(self) -> bool:
        return not self.succeeded and self.rows_committed > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "total_rows": self.total_rows,
            "rows_committed": self.rows_committed,
            "chunks_committed": self.chunks_committed,
            "total_chunks": self.total_chunks,
            "duration": self.duration,
            "failed_chunk": self.failed_chunk.to_dict() if self.failed_chunk else None,
            "last_row_id": self.last_row_id,
        }


def split_chunks(rows: Sequence[Any], chunk_size: int) -> list[Sequence[Any]]:
    if chunk_size <= 0:
        raise LocalPreconditionError(f"chunk_size must be > 0, got {chunk_size}")
    return [rows[i:i + chunk_size] for i in range(0, len(rows), chunk_size)]


class ChunkedImportOrchestrator:
    """
    Sends rows chunk by chunk and advances the RowID cursor.

    Progress snapshots are pushed to ``on_progress``; the orchestrator is
    their only writer.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        cursor_store: RowCursorStore | None = None,
        on_progress: ProgressListener | None = None,
        clock: Callable[[], float] = time.monotonic,
        metrics: ImportMetrics | None = None,
    ):
        """
        Initialize orchestrator.

        Args:
            policy: Retry policy for chunk uploads (default: 2 retries, 1s fixed delay)
            cursor_store: Store advanced after every committed chunk
            on_progress: Listener receiving ChunkProgress snapshots
            clock: Monotonic clock for durations
            metrics: Metrics sink (default: global registry)
        """
        self.policy = policy or RetryPolicy()
        self.cursor_store = cursor_store
        self.on_progress = on_progress
        self._clock = clock
        self.metrics = metrics or ImportMetrics()

    async def run(
        self,
        rows: Sequence[Mapping[str, Any]],
        import_fn: ImportFn,
        chunk_size: int = CHUNK_SIZE,
        table_id: str | None = None,
        start_row_id: int | None = None,
        cancel_event=None,
    ) -> ImportSessionResult:
        """
        Import ``rows`` in chunks of ``chunk_size``.

        Args:
            rows: Rows to import, in order
            import_fn: Coroutine sending one chunk
            chunk_size: Rows per chunk, fixed for the session
            table_id: Destination table (labels, cursor updates)
            start_row_id: RowID the first row is expected to receive; when
                omitted it is taken from the cursor store
            cancel_event: Object with ``is_set()``, checked between chunks

        Returns:
            ImportSessionResult

        Raises:
            LocalPreconditionError: If chunk_size <= 0 (before any remote call)
        """
        chunks = split_chunks(rows, chunk_size)
        total_rows = len(rows)
        label = table_id or "unknown"
        log = ContextLogger(__name__, table_id=label)

        if start_row_id is None and self.cursor_store is not None and table_id:
            start_row_id = self.cursor_store.estimate_start(table_id)
            if start_row_id is None:
                log.warning("RowID cursor unknown: cursor will not be advanced")

        transitions = [SessionState.IDLE]
        result = ImportSessionResult(
            status=SessionState.IDLE,
            total_rows=total_rows,
            rows_committed=0,
            chunks_committed=0,
            total_chunks=len(chunks),
            transitions=transitions,
        )

        with trace_operation(
            "import.run",
            kind=trace.SpanKind.INTERNAL,
            table_id=table_id,
            total_rows=total_rows,
            chunk_size=chunk_size,
            total_chunks=len(chunks),
        ):
            started = self._clock()
            self._emit("importing", 0, total_rows, ChunkPosition(0, len(chunks)))

            for index, chunk in enumerate(chunks, start=1):
                if cancel_event is not None and cancel_event.is_set():
                    log.warning(
                        f"Import cancelled before chunk {index}/{len(chunks)}: "
                        f"{result.rows_committed}/{total_rows} rows committed"
                    )
                    return self._finish(result, SessionState.CANCELLED, started)

                first_row = result.rows_committed + 1
                last_row = result.rows_committed + len(chunk)
                chunk_log = log.bind(chunk_index=index)
                attempts = 1

                def on_retry(attempt: int, exc: Exception, delay: float) -> None:
                    nonlocal attempts
                    attempts = attempt + 1
                    transitions.extend([SessionState.CHUNK_FAILED, SessionState.RETRYING])
                    add_span_event("chunk.retry", chunk_index=index, attempt=attempt, delay=delay)
                    chunk_log.warning(f"Chunk {index} failed transiently, retrying: {exc}")

                transitions.append(SessionState.CHUNK_SENDING)
                try:
                    outcome = await self.policy.call(
                        self._send_chunk,
                        import_fn,
                        chunk,
                        is_retryable=is_transient,
                        on_retry=on_retry,
                    )
                except Exception as e:
                    category = classify_error(e)
                    transitions.append(SessionState.CHUNK_FAILED)
                    result.failed_chunk = ChunkFailure(
                        chunk_index=index,
                        first_row=first_row,
                        last_row=last_row,
                        attempts=attempts,
                        error=f"{type(e).__name__}: {e}",
                        category=category,
                    )
                    self.metrics.record_chunk(label, status="failed", attempts=attempts)
                    chunk_log.error(
                        f"Chunk {index}/{len(chunks)} (rows {first_row}-{last_row}) failed after "
                        f"{attempts} attempt(s) [{category.value}]: {e}. "
                        f"{result.rows_committed}/{total_rows} rows committed before the failure"
                    )
                    return self._finish(result, SessionState.ABORTED, started)

                if outcome.imported_count != len(chunk):
                    chunk_log.warning(
                        f"Destination reported {outcome.imported_count} imported row(s) "
                        f"for a chunk of {len(chunk)}"
                    )

                transitions.append(SessionState.CHUNK_SUCCESS)
                result.rows_committed += len(chunk)
                result.chunks_committed += 1
                self.metrics.record_chunk(label, status="committed", rows=len(chunk), attempts=attempts)

                if start_row_id is not None:
                    result.last_row_id = start_row_id + result.rows_committed - 1
                    if self.cursor_store is not None and table_id:
                        self.cursor_store.record_after_import(
                            table_id, result.last_row_id, confidence=CursorConfidence.ESTIMATED
                        )

                chunk_log.info(
                    f"Chunk {index}/{len(chunks)} committed: "
                    f"{result.rows_committed}/{total_rows} rows"
                )
                self._emit(
                    "importing", result.rows_committed, total_rows, ChunkPosition(index, len(chunks))
                )

            return self._finish(result, SessionState.DONE, started)

    @staticmethod
    async def _send_chunk(import_fn: ImportFn, chunk: Sequence[Mapping[str, Any]]) -> ImportOutcome:
        outcome = await import_fn(chunk)
        if not outcome.succeeded:
            detail = "; ".join(outcome.errors) if outcome.errors else outcome.status
            raise RemoteRejectedError(f"Chunk rejected by destination: {detail}")
        return outcome

    def _finish(self, result: ImportSessionResult, status: SessionState, started: float) -> ImportSessionResult:
        result.status = status
        result.transitions.append(status)
        result.duration = self._clock() - started
        add_span_attributes(
            status=status.value,
            rows_committed=result.rows_committed,
            chunks_committed=result.chunks_committed,
        )
        self._emit(
            status.value,
            result.rows_committed,
            result.total_rows,
            ChunkPosition(result.chunks_committed, result.total_chunks),
        )
        return result

    def _emit(self, phase: str, current: int, total: int, chunk: ChunkPosition | None) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(ChunkProgress.snapshot(phase, current, total, chunk))
        except Exception as e:
            logger.error(f"Error in progress listener: {e}")
