"""Application service for priority and auto-split ROI driver analysis."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from loguru import logger

from roi_drivers.analytics import count_nodes, export_to_table, impact_summary, max_depth
from roi_drivers.config import RATE_FIELD, WEIGHT_FIELD
from roi_drivers.domain.models import ImpactSummary, RecordSet, TreeNode, align_factor_types
from roi_drivers.exceptions import InvalidInputError
from roi_drivers.metrics import fmt_bps
from roi_drivers.tree import TreeBuilder

PRIORITY_ANALYSIS = "user-priority"
AUTO_ANALYSIS = "auto-max-split"
PRIORITY_ALGORITHM = "enhanced-impact-decomposition"
AUTO_ALGORITHM = "total-impact-variance-maximization"


@dataclass(frozen=True)
class AnalysisMetadata:
    total_nodes: int
    max_depth: int
    total_impact_bps: float
    algorithm: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_nodes": self.total_nodes,
            "max_depth": self.max_depth,
            "total_impact_bps": self.total_impact_bps,
            "algorithm": self.algorithm,
        }


@dataclass(frozen=True)
class AnalysisResult:
    analysis_type: str
    target_field: str
    tree: Tuple[TreeNode, ...]
    metadata: AnalysisMetadata
    impact_summary: ImpactSummary
    factor_order: Tuple[str, ...] | None = None
    feature_importance: Dict[str, float] | None = None

    @property
    def root(self) -> TreeNode:
        return self.tree[0]

    @property
    def table(self) -> List[Dict[str, Any]]:
        return export_to_table(self.tree)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "analysis_type": self.analysis_type,
            "target_field": self.target_field,
            "tree": [node.to_dict() for node in self.tree],
            "metadata": self.metadata.to_dict(),
            "impact_summary": self.impact_summary.to_dict(),
        }
        if self.factor_order is not None:
            payload["factor_order"] = list(self.factor_order)
        if self.feature_importance is not None:
            payload["feature_importance"] = dict(self.feature_importance)
        return payload


def _periods(previous: Any, current: Any, target_field: str, weight_field: str) -> Tuple[RecordSet, RecordSet]:
    return align_factor_types(
        RecordSet.coerce(previous, "Previous period", weight_field=weight_field, rate_field=target_field),
        RecordSet.coerce(current, "Current period", weight_field=weight_field, rate_field=target_field),
    )


def _build_result(
    analysis_type: str,
    algorithm: str,
    target_field: str,
    tree: Tuple[TreeNode, ...],
    factor_order: Tuple[str, ...] | None = None,
    feature_importance: Dict[str, float] | None = None,
) -> AnalysisResult:
    metadata = AnalysisMetadata(
        total_nodes=count_nodes(tree),
        max_depth=max_depth(tree),
        total_impact_bps=tree[0].metrics.total_impact_bps,
        algorithm=algorithm,
    )
    logger.info(
        f"{analysis_type} analysis finished: {metadata.total_nodes} node(s), depth {metadata.max_depth}, "
        f"root impact {fmt_bps(metadata.total_impact_bps)}"
    )
    return AnalysisResult(
        analysis_type=analysis_type,
        target_field=target_field,
        tree=tree,
        metadata=metadata,
        impact_summary=impact_summary(tree),
        factor_order=factor_order,
        feature_importance=feature_importance,
    )


def run_priority_analysis(
    previous: Any,
    current: Any,
    factor_order: Sequence[str],
    target_field: str = RATE_FIELD,
    weight_field: str = WEIGHT_FIELD,
    builder: TreeBuilder | None = None,
) -> AnalysisResult:
    """Build the impact tree by splitting on ``factor_order`` level by level."""
    if factor_order is None or isinstance(factor_order, str):
        raise InvalidInputError("Factor order must be a sequence of field names")
    previous_set, current_set = _periods(previous, current, target_field, weight_field)
    builder = builder or TreeBuilder()

    logger.info(f"Running {PRIORITY_ANALYSIS} analysis on {target_field} with factors {list(factor_order)}")
    tree = builder.build_priority_tree(previous_set, current_set, factor_order)
    return _build_result(
        PRIORITY_ANALYSIS,
        PRIORITY_ALGORITHM,
        target_field,
        tree,
        factor_order=tuple(factor_order),
    )


def run_auto_analysis(
    previous: Any,
    current: Any,
    target_field: str = RATE_FIELD,
    candidate_factors: Sequence[str] | None = None,
    weight_field: str = WEIGHT_FIELD,
    builder: TreeBuilder | None = None,
) -> AnalysisResult:
    """Build the impact tree by greedy impact-variance splits."""
    previous_set, current_set = _periods(previous, current, target_field, weight_field)
    builder = builder or TreeBuilder()
    if candidate_factors is None and not previous_set.is_empty():
        candidate_factors = builder.selector.detect_candidates(previous_set, current_set)

    logger.info(f"Running {AUTO_ANALYSIS} analysis on {target_field} over {list(candidate_factors or [])}")
    tree = builder.build_auto_tree(previous_set, current_set, candidate_factors)
    importance = builder.selector.feature_importance(previous_set, current_set, candidate_factors)
    return _build_result(
        AUTO_ANALYSIS,
        AUTO_ALGORITHM,
        target_field,
        tree,
        feature_importance=importance,
    )
