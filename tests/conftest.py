"""
Pytest configuration and fixtures for verified import tests.
Provides an in-memory destination, isolated metrics and cursor stores.
"""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from prometheus_client import CollectorRegistry

from utils.metrics import ImportMetrics
from utils.retry import RetryPolicy
from verified_import.cursor.state import RowCursorStore
from verified_import.remote.client import (
    IMPORT_STATUS_SUCCESS,
    DeleteOutcome,
    DestinationClient,
    ImportMode,
    ImportOutcome,
)
from verified_import.remote.filters import ROW_ID_COLUMN, FilterExpression


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "property: hypothesis property-based tests")


class FakeDestination(DestinationClient):
    """
    In-memory destination assigning contiguous RowIDs from 1

    Scripted failures are consumed one per call:
    - import_script: Exception to raise, ImportOutcome to return, or None
      for a normal import
    - probe_script: Exception to raise, or None for a normal lookup
    """

    def __init__(self):
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.next_row_id: dict[str, int] = {}
        self.import_script: list[Any] = []
        self.probe_script: list[Exception | None] = []
        self.fetch_errors: list[Exception] = []
        self.delete_error: Exception | None = None
        self.delete_cap: int | None = None
        self.mutate: Callable[[dict[str, Any]], dict[str, Any]] | None = None
        self.calls: list[tuple[str, Any]] = []

    def rows(self, table_id: str) -> list[dict[str, Any]]:
        return self.tables.setdefault(table_id, [])

    def add_external_rows(self, table_id: str, count: int, **values) -> None:
        """Insert rows outside any tracked import."""
        for _ in range(count):
            self._store(table_id, dict(values))

    def _store(self, table_id: str, row: dict[str, Any]) -> None:
        row_id = self.next_row_id.get(table_id, 1)
        self.next_row_id[table_id] = row_id + 1
        stored = dict(row)
        if self.mutate is not None:
            stored = self.mutate(stored)
        stored[ROW_ID_COLUMN] = row_id
        self.rows(table_id).append(stored)

    def _matches(self, row: dict[str, Any], expression: FilterExpression) -> bool:
        value = row.get(expression.column)
        return value is not None and str(value).strip() in expression.values

    async def import_rows(self, table_id, rows, mode=ImportMode.APPEND, matching_columns=None):
        self.calls.append(("import", (table_id, len(rows), ImportMode(mode))))
        if self.import_script:
            scripted = self.import_script.pop(0)
            if isinstance(scripted, Exception):
                raise scripted
            if isinstance(scripted, ImportOutcome):
                return scripted
        if ImportMode(mode) is ImportMode.TRUNCATE_ADD:
            self.tables[table_id] = []
        for row in rows:
            self._store(table_id, row)
        return ImportOutcome(status=IMPORT_STATUS_SUCCESS, imported_count=len(rows))

    async def fetch_rows_by_filter(self, table_id, filter_expression):
        self.calls.append(("fetch", (table_id, filter_expression)))
        if self.fetch_errors:
            raise self.fetch_errors.pop(0)
        return [dict(r) for r in self.rows(table_id) if self._matches(r, filter_expression)]

    async def delete_rows_by_filter(self, table_id, filter_expression):
        self.calls.append(("delete", (table_id, filter_expression)))
        if self.delete_error is not None:
            raise self.delete_error
        kept = [r for r in self.rows(table_id) if not self._matches(r, filter_expression)]
        deleted = len(self.rows(table_id)) - len(kept)
        if self.delete_cap is not None:
            deleted = min(deleted, self.delete_cap)
        else:
            self.tables[table_id] = kept
        return DeleteOutcome(deleted_count=deleted)

    async def probe_row_exists(self, table_id, row_id):
        self.calls.append(("probe", (table_id, row_id)))
        if self.probe_script:
            scripted = self.probe_script.pop(0)
            if scripted is not None:
                raise scripted
        return any(r[ROW_ID_COLUMN] == row_id for r in self.rows(table_id))

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)


@pytest.fixture
def registry() -> CollectorRegistry:
    """Isolated Prometheus registry."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry: CollectorRegistry) -> ImportMetrics:
    return ImportMetrics(registry=registry)


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Default retry counts without the waits."""
    return RetryPolicy(max_retries=2, base_delay=0.0, poll_interval=0.0, max_polls=5)


@pytest.fixture
def destination() -> FakeDestination:
    return FakeDestination()


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    return tmp_path / "import_state"


@pytest.fixture
def cursor_store(state_dir: Path, metrics: ImportMetrics) -> RowCursorStore:
    return RowCursorStore(str(state_dir), metrics=metrics)


def make_rows(count: int, start: int = 1, **extra) -> list[dict[str, Any]]:
    """Rows with a unique ``id`` and a few typed columns."""
    return [
        {
            "id": f"ID-{i:05d}",
            "name": f"Customer {i}",
            "amount": f"{i * 10}.50",
            "signed_on": f"2024-01-{(i % 28) + 1:02d}",
            **extra,
        }
        for i in range(start, start + count)
    ]
