"""
Unit tests for typed cell values and cell classification
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from verified_import.verification import AnomalyType, CellValue, ValueKind, classify_cell, parse_date


class TestCellValueParse:
    """Test CellValue.parse"""

    @pytest.mark.parametrize("raw, kind", [
        (None, ValueKind.NULL),
        ("", ValueKind.NULL),
        ("   ", ValueKind.NULL),
        (True, ValueKind.BOOL),
        ("oui", ValueKind.BOOL),
        ("FALSE", ValueKind.BOOL),
        (42, ValueKind.NUMBER),
        (1.5, ValueKind.NUMBER),
        ("1 234,50", ValueKind.NUMBER),
        ("-12.0", ValueKind.NUMBER),
        ("2024-03-01", ValueKind.DATE),
        ("01/03/2024 10:30", ValueKind.DATE),
        ("1 mars 2024", ValueKind.DATE),
        (date(2024, 3, 1), ValueKind.DATE),
        ("ACME Corp", ValueKind.TEXT),
        ("12abc", ValueKind.TEXT),
        ("2024-02-30", ValueKind.TEXT),
    ])
    def test_kinds(self, raw, kind):
        assert CellValue.parse(raw).kind is kind

    def test_number_canonicalized(self):
        assert CellValue.parse("1 234,50").number == Decimal("1234.50")

    def test_whitespace_collapsed(self):
        assert CellValue.parse("  ACME   Corp ").text == "ACME Corp"

    def test_non_finite_float_is_text(self):
        assert CellValue.parse(float("nan")).kind is ValueKind.TEXT

    @pytest.mark.parametrize("left, right", [
        ("10.50", "10.5"),
        ("10,5", 10.5),
        ("1 000", "1000"),
        ("yes", True),
        ("Vrai", "true"),
        ("ACME  Corp", "ACME Corp"),
        ("acme", "ACME"),
        (None, ""),
        ("2024-03-01", "2024-03-01"),
    ])
    def test_equivalent(self, left, right):
        assert CellValue.parse(left).equivalent(CellValue.parse(right))

    @pytest.mark.parametrize("left, right", [
        ("10", "11"),
        ("acme", "acne"),
        ("1", True),
        ("2024-03-01", "01/03/2024"),
    ])
    def test_not_equivalent(self, left, right):
        assert not CellValue.parse(left).equivalent(CellValue.parse(right))


class TestParseDate:
    """Test date parsing"""

    def test_iso_with_time(self):
        assert parse_date("2024-03-01T08:15:00Z") == (datetime(2024, 3, 1, 8, 15), True)

    def test_day_first(self):
        assert parse_date("05.04.2024") == (datetime(2024, 4, 5), False)

    def test_named_month(self):
        assert parse_date("7 Feb, 2024") == (datetime(2024, 2, 7), False)

    def test_unknown_month(self):
        assert parse_date("7 Foo 2024") is None

    def test_not_a_date(self):
        assert parse_date("hello") is None


class TestClassifyCell:
    """Test per-cell anomaly classification order"""

    def test_match(self):
        assert classify_cell("100.0", 100) is None

    def test_empty_received_is_value_mismatch(self):
        anomaly_type, _, message = classify_cell("ACME", None)

        assert anomaly_type is AnomalyType.VALUE_MISMATCH
        assert "received" in message

    def test_truncation_reports_lost_characters(self):
        anomaly_type, delta, _ = classify_cell("Long description text", "Long desc")

        assert anomaly_type is AnomalyType.TRUNCATION
        assert delta == 12

    def test_same_date_other_format(self):
        anomaly_type, delta, _ = classify_cell("2024-03-15", "15/03/2024")

        assert anomaly_type is AnomalyType.DATE_SHIFT
        assert delta == 0

    def test_lost_time_of_day(self):
        anomaly_type, delta, message = classify_cell("2024-03-15 18:00", "2024-03-15")

        assert anomaly_type is AnomalyType.DATE_SHIFT
        assert delta == pytest.approx(-0.75)
        assert "Time of day lost" in message

    def test_day_month_swap(self):
        anomaly_type, delta, message = classify_cell("2024-03-05", "2024-05-03")

        assert anomaly_type is AnomalyType.DATE_SHIFT
        assert delta == 59
        assert "swapped" in message

    def test_timezone_shift(self):
        anomaly_type, delta, _ = classify_cell("2024-03-15 23:00", "2024-03-16 01:00")

        assert anomaly_type is AnomalyType.DATE_SHIFT
        assert delta == pytest.approx(2 / 24)

    def test_distant_dates_are_value_mismatch(self):
        anomaly_type, _, _ = classify_cell("2024-03-15", "2024-06-20")

        assert anomaly_type is AnomalyType.VALUE_MISMATCH

    def test_type_coercion(self):
        anomaly_type, _, message = classify_cell("N/A", 0)

        assert anomaly_type is AnomalyType.TYPE_COERCION
        assert "text" in message and "number" in message

    def test_case_difference_matches(self):
        assert classify_cell("Paris", "PARIS") is None
        assert classify_cell("Straße", "STRASSE") is None

    def test_different_text_still_mismatch(self):
        anomaly_type, _, _ = classify_cell("Paris", "Lyon")

        assert anomaly_type is AnomalyType.VALUE_MISMATCH
