"""
Unit tests for matching-column selection
"""

from conftest import make_rows

from verified_import.matching import (
    ColumnMeta,
    MatchingColumnSelector,
    identifier_weight,
)
from verified_import.matching.selector import (
    SOURCE_CONTENT,
    SOURCE_NONE,
    SOURCE_PATTERN,
    SOURCE_PROFILE,
    SOURCE_SCHEMA,
)


class TestSelect:
    """Test MatchingColumnSelector.select"""

    def test_empty_sample_returns_no_column(self):
        result = MatchingColumnSelector().select([])

        assert result.column is None
        assert result.source == SOURCE_NONE
        assert result.warnings

    def test_identifier_column_selected(self):
        result = MatchingColumnSelector().select(make_rows(20))

        assert result.column == "id"
        assert result.source == SOURCE_PATTERN
        assert result.confidence == 100.0
        assert result.warnings == []

    def test_profile_column_wins_regardless_of_rank(self):
        rows = [{"id": f"A{i}", "category": "x" if i % 2 else "y"} for i in range(10)]

        result = MatchingColumnSelector().select(rows, preferred_column="category")

        assert result.column == "category"
        assert result.source == SOURCE_PROFILE
        assert any("degraded" in w for w in result.warnings)

    def test_profile_column_missing_falls_back(self):
        result = MatchingColumnSelector().select(make_rows(5), preferred_column="reference")

        assert result.column == "id"
        assert any("reference" in w for w in result.warnings)

    def test_profile_column_empty_falls_back(self):
        rows = [{"id": str(i), "ref": ""} for i in range(5)]

        result = MatchingColumnSelector().select(rows, preferred_column="ref")

        assert result.column == "id"

    def test_no_unique_column(self):
        rows = [{"status": "open", "region": "north"} for _ in range(10)]

        result = MatchingColumnSelector().select(rows)

        assert result.column is None
        assert result.source == SOURCE_NONE
        assert any("verification and rollback are unavailable" in w for w in result.warnings)

    def test_all_empty_column_never_selected(self):
        rows = [{"blank": "  ", "status": "a" if i < 3 else "b"} for i in range(4)]

        result = MatchingColumnSelector().select(rows)

        blank = next(c for c in result.candidates if c.name == "blank")
        assert blank.non_empty_count == 0
        assert blank.unique_percentage == 0.0
        assert not blank.is_recommended
        assert result.column != "blank"

    def test_remote_columns_restrict_candidates(self):
        rows = make_rows(5)
        remote = [ColumnMeta("name"), ColumnMeta("amount")]

        result = MatchingColumnSelector().select(rows, remote_columns=remote)

        assert {c.name for c in result.candidates} == {"name", "amount"}
        assert result.column == "name"
        assert result.source == SOURCE_CONTENT

    def test_schema_unique_column_preferred_on_tie(self):
        rows = [{"label": f"L{i}", "code_client": f"C{i}"} for i in range(10)]
        remote = [ColumnMeta("label"), ColumnMeta("code_client", data_type="AUTO_NUMBER")]

        result = MatchingColumnSelector().select(rows, remote_columns=remote)

        assert result.column == "code_client"
        assert result.source == SOURCE_SCHEMA

    def test_acceptable_uniqueness_warning(self):
        rows = [{"ref": f"R{i}"} for i in range(19)] + [{"ref": "R0"}]

        result = MatchingColumnSelector().select(rows)

        assert result.column == "ref"
        assert result.candidates[0].unique_percentage == 95.0
        assert any("extra rows" in w for w in result.warnings)

    def test_uniqueness_ignores_case_and_whitespace(self):
        rows = [{"ref": "abc"}, {"ref": " ABC "}, {"ref": "def"}, {"ref": "ghi"}]

        result = MatchingColumnSelector().select(rows)

        assert result.candidates[0].unique_percentage == 75.0


class TestRank:
    """Test candidate ranking"""

    def test_uniqueness_descending(self):
        rows = [{"a": str(i % 2), "b": str(i)} for i in range(10)]

        ranked = MatchingColumnSelector().select(rows).candidates

        assert [c.name for c in ranked] == ["b", "a"]

    def test_recommended_before_sparse(self):
        rows = [{"sparse": f"S{i}" if i < 5 else "", "full": f"F{i}"} for i in range(10)]

        ranked = MatchingColumnSelector().select(rows).candidates

        assert [c.name for c in ranked] == ["full", "sparse"]
        assert ranked[0].is_recommended
        assert not ranked[1].is_recommended

    def test_sample_order_breaks_ties(self):
        rows = [{"first": f"A{i}", "second": f"B{i}"} for i in range(10)]

        ranked = MatchingColumnSelector().select(rows).candidates

        assert [c.name for c in ranked] == ["first", "second"]

    def test_identifier_weight(self):
        assert identifier_weight("ID") == 100
        assert identifier_weight("numero_facture") == 80
        assert identifier_weight("sku") == 60
        assert identifier_weight("description") == 0
