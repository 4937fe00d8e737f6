"""Tests for the priority/auto analysis services and their comparison."""

import polars as pl
import pytest

from roi_drivers.application.analysis_service import (
    AUTO_ALGORITHM,
    AUTO_ANALYSIS,
    PRIORITY_ALGORITHM,
    PRIORITY_ANALYSIS,
    run_auto_analysis,
    run_priority_analysis,
)
from roi_drivers.application.comparison_service import RECOMMENDATIONS, compare_analyses, top_features
from roi_drivers.exceptions import InvalidInputError
from roi_drivers.tree import TreeBuilder


class TestRunPriorityAnalysis:
    """Tests for run_priority_analysis."""

    def test_result_from_record_lists(self, nested_records):
        previous, current = nested_records
        result = run_priority_analysis(previous, current, ["tier", "channel"])

        assert result.analysis_type == PRIORITY_ANALYSIS
        assert result.target_field == "roi"
        assert result.factor_order == ("tier", "channel")
        assert result.feature_importance is None
        assert result.metadata.algorithm == PRIORITY_ALGORITHM
        assert result.metadata.total_nodes == 7
        assert result.metadata.max_depth == 3
        assert result.metadata.total_impact_bps == pytest.approx(200.0)
        assert result.root.metrics.current_rate == pytest.approx(0.12)
        assert len(result.table) == 7

    def test_accepts_polars_frames(self, nested_records):
        previous, current = nested_records
        result = run_priority_analysis(pl.DataFrame(previous), pl.DataFrame(current), ["channel"])
        assert [child.value for child in result.root.children] == ["web", "branch"]

    def test_custom_fields(self):
        previous = [{"balance": 100, "apr": 0.10, "tier": "A"}]
        current = [{"balance": 100, "apr": 0.13, "tier": "A"}]
        result = run_priority_analysis(previous, current, ["tier"], target_field="apr", weight_field="balance")
        assert result.target_field == "apr"
        assert result.metadata.total_impact_bps == pytest.approx(300.0)

    def test_to_dict(self, nested_records):
        previous, current = nested_records
        payload = run_priority_analysis(previous, current, ["tier"]).to_dict()

        assert payload["analysis_type"] == PRIORITY_ANALYSIS
        assert payload["factor_order"] == ["tier"]
        assert "feature_importance" not in payload
        root = payload["tree"][0]
        assert root["filter"] == {}
        assert root["children"][0]["filter"] == {"tier": "a"}
        assert root["children"][0]["children"] is None

    def test_string_factor_order_rejected(self, nested_records):
        previous, current = nested_records
        with pytest.raises(InvalidInputError):
            run_priority_analysis(previous, current, "tier")

    def test_missing_periods_rejected(self, nested_records):
        previous, _ = nested_records
        with pytest.raises(InvalidInputError, match="Current period"):
            run_priority_analysis(previous, None, ["tier"])
        with pytest.raises(InvalidInputError):
            run_priority_analysis([], previous, ["tier"])

    def test_missing_rate_field_rejected(self):
        records = [{"total_loan_amount": 100, "tier": "A"}]
        with pytest.raises(InvalidInputError, match="roi"):
            run_priority_analysis(records, records, ["tier"])

    def test_non_numeric_weight_rejected(self):
        records = [{"total_loan_amount": "lots", "roi": 0.1, "tier": "A"}]
        with pytest.raises(InvalidInputError, match="non-numeric"):
            run_priority_analysis(records, records, ["tier"])

    def test_factor_typed_differently_across_periods(self):
        previous = [
            {"total_loan_amount": 100, "roi": 0.10, "tier": 1},
            {"total_loan_amount": 100, "roi": 0.10, "tier": 2},
        ]
        current = [
            {"total_loan_amount": 100, "roi": 0.12, "tier": "1"},
            {"total_loan_amount": 100, "roi": 0.10, "tier": "x"},
        ]
        result = run_priority_analysis(previous, current, ["tier"])

        children = {child.value: child for child in result.root.children}
        assert sorted(children) == ["1", "2", "x"]
        assert children["1"].metrics.previous_count == 1
        assert children["1"].metrics.current_count == 1
        assert children["x"].metrics.previous_count == 0


class TestRunAutoAnalysis:
    """Tests for run_auto_analysis."""

    def test_result(self, nested_records):
        previous, current = nested_records
        result = run_auto_analysis(previous, current)

        assert result.analysis_type == AUTO_ANALYSIS
        assert result.metadata.algorithm == AUTO_ALGORITHM
        assert result.factor_order is None
        assert result.feature_importance["tier"] == pytest.approx(0.8)
        assert result.metadata.max_depth == 3

    def test_custom_builder(self, nested_records):
        previous, current = nested_records
        result = run_auto_analysis(previous, current, builder=TreeBuilder(max_depth=1))
        assert result.metadata.max_depth == 2
        assert result.metadata.total_nodes == 3

    def test_root_only_when_nothing_varies(self):
        rows = [{"total_loan_amount": 100, "roi": 0.10, "tier": "A"}] * 12
        result = run_auto_analysis(rows, [{**row, "roi": 0.12} for row in rows])
        assert result.metadata.total_nodes == 1
        assert result.feature_importance == {"tier": 1.0}
        assert result.impact_summary.total_impact == 0.0

    def test_custom_weight_and_rate_never_split(self):
        previous = [{"balance": 100, "apr": 0.10, "tier": "A"}, {"balance": 300, "apr": 0.10, "tier": "B"}]
        current = [{"balance": 100, "apr": 0.12, "tier": "A"}, {"balance": 300, "apr": 0.10, "tier": "B"}]
        result = run_auto_analysis(
            previous,
            current,
            target_field="apr",
            candidate_factors=["balance", "apr", "tier"],
            weight_field="balance",
            builder=TreeBuilder(min_samples=1),
        )

        assert result.feature_importance == {"tier": 1.0}
        assert {child.factor for child in result.root.children} == {"tier"}


# =============================================================================
# Comparison
# =============================================================================


class TestCompareAnalyses:
    """Tests for compare_analyses."""

    def test_summary_and_recommendations(self, nested_records):
        previous, current = nested_records
        priority = run_priority_analysis(previous, current, ["channel", "tier"])
        auto = run_auto_analysis(previous, current)

        comparison = compare_analyses(priority, auto)

        assert comparison["summary"]["user_priority"] == {
            "total_nodes": 7,
            "max_depth": 3,
            "factor_order": ["channel", "tier"],
        }
        assert comparison["summary"]["auto_max_split"]["total_nodes"] == 5
        assert comparison["summary"]["auto_max_split"]["top_features"] == ["tier", "channel"]
        assert comparison["differences"]["structure"] == (
            "User-Priority created 7 nodes vs Auto-Max Split's 5 nodes"
        )
        assert comparison["recommendations"] == RECOMMENDATIONS

    def test_top_features_limit(self):
        importance = {"a": 0.1, "b": 0.4, "c": 0.3, "d": 0.2}
        assert top_features(importance) == ["b", "c", "d"]
        assert top_features(None) == []
