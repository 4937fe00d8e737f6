"""Tests for column normalization, cleaning, score banding and preparation."""

import polars as pl
import pytest

from roi_drivers.exceptions import InvalidInputError
from roi_drivers.preparation import (
    apply_score_banding,
    distinct_values,
    is_categorical,
    normalize_column_name,
    normalize_frame,
    prepare_for_analysis,
)


class TestNormalizeColumnName:
    """Tests for header normalization."""

    @pytest.mark.parametrize(
        "header, expected",
        [
            ("Loan Amount", "total_loan_amount"),
            ("Total Loan Amount", "total_loan_amount"),
            ("AMT", "total_loan_amount"),
            ("ROI", "roi"),
            ("Interest Rate", "roi"),
            ("Rate of Interest", "roi"),
            ("V Score", "v_score"),
            ("V", "v_score"),
            ("Credit Tier", "credit_tier"),
            ("  Sales--Channel ", "sales_channel"),
        ],
    )
    def test_aliases(self, header, expected):
        assert normalize_column_name(header) == expected

    def test_single_letter_alias_needs_exact_match(self):
        assert normalize_column_name("Vintage") == "vintage"
        assert normalize_column_name("V Band") == "v_band"

    def test_blank_header(self):
        assert normalize_column_name("  ") == "unknown_column"
        assert normalize_column_name(None) == "unknown_column"


class TestNormalizeFrame:
    """Tests for normalize_frame cleaning."""

    def test_drops_incomplete_rows_and_standardizes_text(self):
        raw = pl.DataFrame(
            {
                "Loan Amount": [1000, 2000, 0, 500],
                "ROI": [12.0, 10.0, 11.0, None],
                "Tier": [" A ", "b", "A", "B"],
            }
        )
        frame, stats = normalize_frame(raw)

        assert frame.columns == ["total_loan_amount", "roi", "tier"]
        assert frame.get_column("roi").to_list() == pytest.approx([0.12, 0.10])
        assert frame.get_column("tier").to_list() == ["a", "b"]
        assert stats.original_count == 4
        assert stats.removed_count == 2
        assert stats.standardized_count == 1
        assert stats.clean_count == 2
        assert stats.quality_score == 50.0

    def test_numeric_text_is_parsed(self):
        raw = pl.DataFrame(
            {
                "Loan Amount": ["1,000", "$2,500"],
                "Interest Rate": ["12.5%", "9%"],
                "Channel": ["Web", "  "],
            }
        )
        frame, stats = normalize_frame(raw)

        assert frame.schema["total_loan_amount"] == pl.Float64
        assert frame.get_column("total_loan_amount").to_list() == [1000.0]
        assert frame.get_column("roi").to_list() == pytest.approx([0.125])
        # Blank channel becomes null and the row is dropped.
        assert stats.removed_count == 1

    def test_date_column_not_mapped_to_rate(self):
        raw = pl.DataFrame({"Amount": [100], "ROI": [10.0], "Rate Date": ["2024-01-01"]})
        frame, _ = normalize_frame(raw)
        assert "rate_date" in frame.columns

    def test_missing_required_columns(self):
        raw = pl.DataFrame({"Tier": ["a"], "ROI": [10.0]})
        with pytest.raises(InvalidInputError, match="total_loan_amount"):
            normalize_frame(raw)


class TestScoreBanding:
    """Tests for apply_score_banding."""

    def test_bands(self):
        frame = pl.DataFrame({"v_score": ["V9", "12", "v15", "n/a"]})
        banded = apply_score_banding(frame)
        assert banded.get_column("v_score_band").to_list() == [
            "Low (≤V10)",
            "Mid (V11-V14)",
            "High (≥V15)",
            "Unknown",
        ]

    def test_without_score_column(self):
        frame = pl.DataFrame({"tier": ["a"]})
        assert apply_score_banding(frame).columns == ["tier"]


class TestDistinctValues:
    """Tests for categorical detection."""

    def test_low_cardinality_is_categorical(self):
        assert is_categorical(pl.Series(["a", "b", "a"]))

    def test_high_cardinality_numbers_are_not(self):
        assert not is_categorical(pl.Series([float(value) for value in range(40)]))

    def test_distinct_values_skip_excluded(self):
        frame = pl.DataFrame(
            {
                "total_loan_amount": [1.0, 2.0],
                "roi": [0.1, 0.2],
                "v_score": [9, 12],
                "tier": ["b", "a"],
            }
        )
        assert distinct_values(frame) == {"tier": ["a", "b"]}


# =============================================================================
# Full preparation
# =============================================================================


class TestPrepareForAnalysis:
    """Tests for prepare_for_analysis."""

    def test_prepares_both_periods(self, raw_portfolio):
        previous_raw, current_raw = raw_portfolio
        prepared = prepare_for_analysis(previous_raw, current_raw)

        assert prepared.has_score
        assert prepared.previous.height == 24
        assert prepared.current.height == 24
        assert prepared.distinct_values["tier"] == ["a", "b"]
        assert prepared.distinct_values["channel"] == ["branch", "web"]
        assert prepared.distinct_values["v_score_band"] == ["Mid (V11-V14)"]
        assert "application_id" in prepared.available_columns
        assert "roi" not in prepared.available_columns

    def test_summary(self, raw_portfolio):
        previous_raw, current_raw = raw_portfolio
        summary = prepare_for_analysis(previous_raw, current_raw).summary

        assert summary["previous"]["weighted_rate"] == pytest.approx(0.10)
        assert summary["current"]["weighted_rate"] == pytest.approx(0.12)
        assert summary["previous"]["total_weight"] == pytest.approx(2400.0)
        assert summary["change"]["rate_change_bps"] == pytest.approx(200.0)
        assert summary["change"]["percentage_change"] == pytest.approx(20.0)

    def test_cleaning_stats(self, raw_portfolio):
        previous_raw, current_raw = raw_portfolio
        prepared = prepare_for_analysis(previous_raw, current_raw)
        stats = prepared.cleaning_stats["previous"]
        assert stats.clean_count == 24
        assert stats.quality_score == 100.0

    def test_prepared_data_compares_by_identity(self, raw_portfolio):
        previous_raw, current_raw = raw_portfolio
        first = prepare_for_analysis(previous_raw, current_raw)
        second = prepare_for_analysis(previous_raw, current_raw)
        assert first != second
        assert len({first, second}) == 2

    def test_column_typed_differently_across_periods(self, mixed_tier_portfolio):
        previous_raw, current_raw = mixed_tier_portfolio
        prepared = prepare_for_analysis(previous_raw, current_raw)

        assert prepared.previous.frame.schema["tier"] == pl.Utf8
        assert prepared.current.frame.schema["tier"] == pl.Utf8
        assert prepared.distinct_values["tier"] == ["1", "2", "x"]
        assert prepared.cleaning_stats["current"].clean_count == 12

    def test_empty_period_raises(self, raw_portfolio):
        previous_raw, _ = raw_portfolio
        with pytest.raises(InvalidInputError, match="Current period"):
            prepare_for_analysis(previous_raw, [])
