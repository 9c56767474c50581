"""
Unit tests for the chunked import orchestrator

Tests verify:
- Chunk splitting and ordering
- Retry of transient failures and abort on rejection
- Cancellation between chunks
- Progress snapshots and cursor advancement
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import make_rows
from verified_import.cursor.state import CursorConfidence
from verified_import.errors import ErrorCategory, LocalPreconditionError, TransientRemoteError
from verified_import.importer import ChunkedImportOrchestrator, SessionState, split_chunks
from verified_import.remote.client import IMPORT_STATUS_ERROR, ImportOutcome


def _import_fn(destination, table_id="sales"):
    async def send(chunk):
        return await destination.import_rows(table_id, chunk)
    return send


@pytest.fixture
def orchestrator(fast_policy, metrics):
    return ChunkedImportOrchestrator(policy=fast_policy, clock=lambda: 1.0, metrics=metrics)


class TestSplitChunks:
    def test_last_chunk_shorter(self):
        assert [len(c) for c in split_chunks(list(range(12)), 5)] == [5, 5, 2]

    def test_empty(self):
        assert split_chunks([], 5) == []

    @pytest.mark.parametrize("size", [0, -3])
    def test_invalid_size(self, size):
        with pytest.raises(LocalPreconditionError):
            split_chunks([1], size)


class TestOrchestratorRun:
    """Test ChunkedImportOrchestrator.run"""

    @pytest.mark.asyncio
    async def test_chunks_sent_in_order(self, orchestrator, destination):
        rows = make_rows(12)

        result = await orchestrator.run(rows, _import_fn(destination), chunk_size=5, table_id="sales")

        assert result.succeeded
        assert result.rows_committed == 12
        assert result.chunks_committed == 3
        assert result.total_chunks == 3
        assert [args[1] for name, args in destination.calls if name == "import"] == [5, 5, 2]
        assert [r["id"] for r in destination.rows("sales")] == [r["id"] for r in rows]
        assert result.transitions[0] is SessionState.IDLE
        assert result.transitions[-1] is SessionState.DONE

    @pytest.mark.asyncio
    async def test_invalid_chunk_size_before_any_call(self, orchestrator):
        import_fn = AsyncMock()

        with pytest.raises(LocalPreconditionError):
            await orchestrator.run(make_rows(3), import_fn, chunk_size=0)

        import_fn.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_rows(self, orchestrator):
        import_fn = AsyncMock()

        result = await orchestrator.run([], import_fn)

        assert result.status is SessionState.DONE
        assert result.total_chunks == 0
        import_fn.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self, orchestrator, destination, registry):
        destination.import_script = [TransientRemoteError("503 Service Unavailable")]

        result = await orchestrator.run(make_rows(4), _import_fn(destination), chunk_size=5, table_id="sales")

        assert result.succeeded
        assert destination.count("import") == 2
        assert result.transitions == [
            SessionState.IDLE,
            SessionState.CHUNK_SENDING,
            SessionState.CHUNK_FAILED,
            SessionState.RETRYING,
            SessionState.CHUNK_SUCCESS,
            SessionState.DONE,
        ]
        assert registry.get_sample_value("import_chunk_retries_total", {"table_id": "sales"}) == 1

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, orchestrator, destination, registry):
        destination.import_script = [TransientRemoteError("timeout")] * 3

        result = await orchestrator.run(make_rows(4), _import_fn(destination), chunk_size=5, table_id="sales")

        assert result.status is SessionState.ABORTED
        assert result.rows_committed == 0
        assert result.partial is False
        assert destination.count("import") == 3
        failure = result.failed_chunk
        assert failure.chunk_index == 1
        assert failure.attempts == 3
        assert failure.category is ErrorCategory.TRANSIENT
        assert registry.get_sample_value(
            "import_chunks_total", {"table_id": "sales", "status": "failed"}
        ) == 1

    @pytest.mark.asyncio
    async def test_rejected_chunk_aborts_without_retry(self, orchestrator, destination):
        destination.import_script = [
            None,
            ImportOutcome(status=IMPORT_STATUS_ERROR, imported_count=0, errors=["unknown column"]),
        ]

        result = await orchestrator.run(make_rows(12), _import_fn(destination), chunk_size=5, table_id="sales")

        assert result.status is SessionState.ABORTED
        assert result.rows_committed == 5
        assert result.partial is True
        assert destination.count("import") == 2
        failure = result.failed_chunk
        assert (failure.chunk_index, failure.first_row, failure.last_row) == (2, 6, 10)
        assert failure.attempts == 1
        assert failure.category is ErrorCategory.REJECTED
        assert "unknown column" in failure.error

    @pytest.mark.asyncio
    async def test_cancelled_between_chunks(self, fast_policy, metrics, destination):
        cancel = asyncio.Event()

        def listener(progress):
            if progress.current >= 5:
                cancel.set()

        orchestrator = ChunkedImportOrchestrator(policy=fast_policy, on_progress=listener, metrics=metrics)

        result = await orchestrator.run(
            make_rows(12), _import_fn(destination), chunk_size=5, table_id="sales", cancel_event=cancel
        )

        assert result.status is SessionState.CANCELLED
        assert result.rows_committed == 5
        assert destination.count("import") == 1

    @pytest.mark.asyncio
    async def test_progress_snapshots(self, fast_policy, metrics, destination):
        snapshots = []
        orchestrator = ChunkedImportOrchestrator(policy=fast_policy, on_progress=snapshots.append, metrics=metrics)

        await orchestrator.run(make_rows(12), _import_fn(destination), chunk_size=5)

        currents = [s.current for s in snapshots]
        assert currents == sorted(currents)
        assert snapshots[0].phase == "importing"
        assert snapshots[0].current == 0
        assert snapshots[-1].phase == "done"
        assert snapshots[-1].percentage == 100.0
        assert snapshots[-1].chunk.current == 3

    @pytest.mark.asyncio
    async def test_listener_error_ignored(self, fast_policy, metrics, destination):
        def broken(progress):
            raise RuntimeError("listener broke")

        orchestrator = ChunkedImportOrchestrator(policy=fast_policy, on_progress=broken, metrics=metrics)

        result = await orchestrator.run(make_rows(3), _import_fn(destination), chunk_size=2)

        assert result.succeeded

    @pytest.mark.asyncio
    async def test_cursor_advanced_per_chunk(self, fast_policy, metrics, destination, cursor_store):
        cursor_store.manual_resync("sales", 100)
        orchestrator = ChunkedImportOrchestrator(policy=fast_policy, cursor_store=cursor_store, metrics=metrics)

        result = await orchestrator.run(make_rows(12), _import_fn(destination), chunk_size=5, table_id="sales")

        assert result.last_row_id == 112
        cursor = cursor_store.get("sales")
        assert cursor.estimated_max_row_id == 112
        assert cursor.confidence is CursorConfidence.ESTIMATED

    @pytest.mark.asyncio
    async def test_unknown_cursor_left_untouched(self, fast_policy, metrics, destination, cursor_store):
        orchestrator = ChunkedImportOrchestrator(policy=fast_policy, cursor_store=cursor_store, metrics=metrics)

        result = await orchestrator.run(make_rows(3), _import_fn(destination), table_id="sales")

        assert result.succeeded
        assert result.last_row_id is None
        assert cursor_store.get("sales") is None

    @pytest.mark.asyncio
    async def test_committed_metrics(self, orchestrator, destination, registry):
        await orchestrator.run(make_rows(12), _import_fn(destination), chunk_size=5, table_id="sales")

        assert registry.get_sample_value(
            "import_chunks_total", {"table_id": "sales", "status": "committed"}
        ) == 3
        assert registry.get_sample_value("import_rows_imported_total", {"table_id": "sales"}) == 12

    @pytest.mark.asyncio
    async def test_result_dict(self, orchestrator, destination):
        result = await orchestrator.run(make_rows(2), _import_fn(destination), table_id="sales", start_row_id=1)

        data = result.to_dict()
        assert data["status"] == "done"
        assert data["last_row_id"] == 2
        assert data["failed_chunk"] is None
