"""
Unit tests for trial rollback and per-mode rollback rules
"""

import pytest

from conftest import make_rows
from verified_import.errors import LocalPreconditionError, TransientRemoteError
from verified_import.remote.client import ImportMode
from verified_import.rollback import (
    CorrectionMethod,
    RollbackExecutor,
    RollbackResult,
    can_rollback,
    get_rollback_info,
)


@pytest.fixture
def executor(destination, metrics):
    return RollbackExecutor(destination, clock=lambda: 5.0, metrics=metrics)


async def _seed(destination, count):
    rows = make_rows(count)
    await destination.import_rows("sales", rows)
    return [r["id"] for r in rows]


class TestRollbackExecutor:
    """Test RollbackExecutor.rollback"""

    @pytest.mark.asyncio
    async def test_deletes_matching_rows(self, executor, destination):
        values = await _seed(destination, 5)
        destination.add_external_rows("sales", 2, id="OTHER")

        result = await executor.rollback("sales", "id", values)

        assert result.success
        assert result.deleted_rows == 5
        assert result.remaining_values == []
        assert result.filter_expression.startswith('"id" IN (')
        assert [r["id"] for r in destination.rows("sales")] == ["OTHER", "OTHER"]

    @pytest.mark.asyncio
    async def test_single_value_uses_equality(self, executor, destination):
        values = await _seed(destination, 1)

        result = await executor.rollback("sales", "id", values)

        assert result.filter_expression == "\"id\" = 'ID-00001'"

    @pytest.mark.asyncio
    async def test_network_error_leaves_all_values(self, executor, destination, registry):
        values = await _seed(destination, 50)
        destination.delete_error = TransientRemoteError("connection reset")

        result = await executor.rollback("sales", "id", values)

        assert result.success is False
        assert result.deleted_rows == 0
        assert result.remaining_values == values
        assert "connection reset" in result.error_message
        assert destination.count("delete") == 1
        assert registry.get_sample_value(
            "import_rollbacks_total", {"table_id": "sales", "status": "failed"}
        ) == 1

    @pytest.mark.asyncio
    async def test_partial_delete_is_unconfirmed(self, executor, destination):
        values = await _seed(destination, 5)
        destination.delete_cap = 3

        result = await executor.rollback("sales", "id", values)

        assert result.success is False
        assert result.deleted_rows == 3
        assert result.remaining_values == values
        assert "3 deletion(s) for 5 value(s)" in result.error_message

    @pytest.mark.asyncio
    async def test_duplicate_values_counted_once(self, executor, destination):
        values = await _seed(destination, 2)

        result = await executor.rollback("sales", "id", values + values)

        assert result.success
        assert result.deleted_rows == 2

    @pytest.mark.asyncio
    async def test_blank_values_never_reach_the_filter(self, executor, destination):
        values = await _seed(destination, 1)
        destination.add_external_rows("sales", 3, id="")

        result = await executor.rollback("sales", "id", values + ["  ", "", None])

        assert result.success
        assert result.deleted_rows == 1
        assert result.filter_expression == "\"id\" = 'ID-00001'"
        assert [r["id"] for r in destination.rows("sales")] == ["", "", ""]

    @pytest.mark.asyncio
    async def test_failed_rollback_lists_only_real_values(self, executor, destination):
        values = await _seed(destination, 2)
        destination.delete_error = TransientRemoteError("timeout")

        result = await executor.rollback("sales", "id", [" ", *values])

        assert result.success is False
        assert result.remaining_values == values

    @pytest.mark.asyncio
    async def test_success_metric(self, executor, destination, registry):
        values = await _seed(destination, 2)

        await executor.rollback("sales", "id", values)

        assert registry.get_sample_value(
            "import_rollbacks_total", {"table_id": "sales", "status": "success"}
        ) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("column, values", [
        (None, ["a"]),
        ("", ["a"]),
        ("id", []),
        ("id", ["  ", ""]),
        ("id", [None, "\t"]),
    ])
    async def test_preconditions(self, executor, destination, column, values):
        with pytest.raises(LocalPreconditionError):
            await executor.rollback("sales", column, values)

        assert destination.count("delete") == 0


class TestRollbackResult:
    def test_dict_round_trip(self):
        result = RollbackResult(
            success=False,
            deleted_rows=1,
            duration=0.4,
            error_message="timeout",
            remaining_values=["a", "b"],
            filter_expression="\"id\" IN ('a','b')",
        )

        assert RollbackResult.from_dict(result.to_dict()) == result


class TestRollbackRules:
    """Test rollback capability per import mode"""

    @pytest.mark.parametrize("mode", [ImportMode.APPEND, ImportMode.ONLY_ADD, "append", "onlyadd"])
    def test_insert_only_modes(self, mode):
        assert can_rollback(mode) == (True, None)
        assert get_rollback_info(mode).correction_method is CorrectionMethod.ROLLBACK

    @pytest.mark.parametrize("mode, method", [
        (ImportMode.UPDATE_ADD, CorrectionMethod.REIMPORT_PERIOD),
        (ImportMode.TRUNCATE_ADD, CorrectionMethod.REIMPORT_FULL),
        (ImportMode.DELETE_UPSERT, CorrectionMethod.REIMPORT_FULL),
    ])
    def test_overwriting_modes(self, mode, method):
        allowed, reason = can_rollback(mode)

        assert allowed is False
        assert reason
        assert get_rollback_info(mode).correction_method is method

    def test_unknown_mode(self):
        info = get_rollback_info("merge")

        assert info.can_rollback is False
        assert "merge" in info.message

    def test_unchanged_row_id_has_nothing_to_undo(self):
        allowed, reason = can_rollback(ImportMode.APPEND, row_id_before=40, row_id_after=40)

        assert allowed is False
        assert "RowID unchanged" in reason

    def test_advanced_row_id(self):
        assert can_rollback(ImportMode.APPEND, row_id_before=40, row_id_after=45) == (True, None)
