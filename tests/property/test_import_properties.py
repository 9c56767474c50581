"""
Property-based tests for verified imports using Hypothesis.

Tests invariants that should hold for all inputs:
- Matching-column selection never picks an empty column
- An unaltered round trip produces no anomaly
- The RowID probe resolves exactly the boundaries within tolerance
- Filter quoting keeps every value inside its literal
"""

import asyncio

import pytest
from hypothesis import given, settings, strategies as st
from prometheus_client import CollectorRegistry

from conftest import FakeDestination
from utils.metrics import ImportMetrics
from utils.retry import RetryPolicy
from verified_import.cursor.probe import CursorProbe
from verified_import.matching import MatchingColumnSelector
from verified_import.remote.filters import equals_filter, in_filter
from verified_import.verification import Reconciler, VerificationConfig, build_sent_rows

pytestmark = pytest.mark.property

COLUMNS = ("id", "name", "amount", "notes")

cell_values = st.one_of(
    st.none(),
    st.just(""),
    st.text(max_size=12),
    st.integers(min_value=-10**6, max_value=10**6).map(str),
    st.dates().map(lambda d: d.isoformat()),
)


def _isolated_metrics():
    return ImportMetrics(registry=CollectorRegistry())


@settings(deadline=None)
@given(rows=st.lists(st.fixed_dictionaries({c: cell_values for c in COLUMNS}), max_size=30))
def test_selected_column_is_never_empty(rows):
    """A recommended matching column always holds at least one value."""
    result = MatchingColumnSelector().select(rows)

    if result.column is not None:
        chosen = next(c for c in result.candidates if c.name == result.column)
        assert chosen.non_empty_count > 0
        assert any(row.get(result.column) not in (None, "") for row in rows)


@settings(max_examples=50, deadline=None)
@given(values=st.lists(st.fixed_dictionaries({c: cell_values for c in COLUMNS[1:]}), min_size=1, max_size=15))
def test_round_trip_has_no_anomaly(values):
    """Rows read back unchanged reconcile without any anomaly."""
    rows = [{"id": f"K{i}", **row} for i, row in enumerate(values)]
    destination = FakeDestination()

    async def scenario():
        await destination.import_rows("t", rows)

        async def fetch(keys):
            return await destination.fetch_rows_by_filter("t", in_filter("id", keys))

        reconciler = Reconciler(metrics=_isolated_metrics())
        return await reconciler.verify(
            VerificationConfig(sent_rows=build_sent_rows(rows), matching_column="id", fetch_received=fetch)
        )

    result = asyncio.run(scenario())

    assert result.anomalies == []
    assert result.matched_rows == len(rows)
    assert result.success


@settings(max_examples=100, deadline=None)
@given(
    existing=st.integers(min_value=0, max_value=40),
    estimate=st.integers(min_value=0, max_value=60),
    tolerance=st.integers(min_value=0, max_value=8),
)
def test_probe_resolves_boundaries_within_tolerance(existing, estimate, tolerance):
    """The probe finds the true boundary iff it lies within tolerance of the estimate."""
    destination = FakeDestination()
    destination.add_external_rows("t", existing)
    probe = CursorProbe(
        destination,
        tolerance=tolerance,
        policy=RetryPolicy(base_delay=0, poll_interval=0),
        metrics=_isolated_metrics(),
    )

    result = asyncio.run(probe.probe("t", estimate))

    if abs(existing - estimate) <= tolerance:
        assert result.within_tolerance
        assert result.resolved_row_id == existing
        assert result.offset == existing - estimate
    else:
        assert not result.within_tolerance
        assert result.resolved_row_id is None


@given(value=st.text(min_size=1, max_size=30).filter(lambda v: v.strip()))
def test_filter_value_stays_quoted(value):
    """Doubling quotes leaves exactly one literal in the expression."""
    sql = equals_filter("id", value).to_sql()
    literal = sql[len('"id" = '):]

    assert literal.startswith("'") and literal.endswith("'")
    assert literal[1:-1].replace("''", "").count("'") == 0
