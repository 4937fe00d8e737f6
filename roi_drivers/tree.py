"""Tree Builder: priority-sequence and auto-split impact trees."""

from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

from loguru import logger

from roi_drivers.config import MAX_AUTO_DEPTH, MIN_SPLIT_SAMPLES, ROOT_FACTOR, ROOT_LABEL
from roi_drivers.domain.models import NodeMetrics, RecordSet, SegmentPath, TreeNode, align_factor_types
from roi_drivers.exceptions import InvalidInputError
from roi_drivers.factor_selection import FactorSelector
from roi_drivers.impact import ImpactDecomposer
from roi_drivers.metrics import safe_percent, safe_ratio, to_float

PortfolioTotals = Tuple[float, float]


class TreeBuilder:
    """Recursive impact tree construction.

    Every node is decomposed against the full portfolio totals. The root's
    total impact anchors ``percent_on_root`` and each node's total impact
    anchors its children's ``percent_on_parent``. Nodes are frozen once
    built; a new tree is produced per call.
    """

    def __init__(
        self,
        max_depth: int = MAX_AUTO_DEPTH,
        min_samples: int = MIN_SPLIT_SAMPLES,
        decomposer: ImpactDecomposer | None = None,
        selector: FactorSelector | None = None,
    ) -> None:
        if max_depth < 1:
            raise InvalidInputError(f"max_depth must be >= 1, got {max_depth}")
        if min_samples < 1:
            raise InvalidInputError(f"min_samples must be >= 1, got {min_samples}")
        self.max_depth = max_depth
        self.min_samples = min_samples
        self.decomposer = decomposer or ImpactDecomposer()
        self.selector = selector or FactorSelector(self.decomposer)

    @staticmethod
    def _validate_periods(previous: RecordSet | None, current: RecordSet | None) -> None:
        if previous is None or previous.is_empty():
            raise InvalidInputError("Previous period records are required and must not be empty")
        if current is None or current.is_empty():
            raise InvalidInputError("Current period records are required and must not be empty")

    def _portfolio_totals(self, previous: RecordSet, current: RecordSet) -> PortfolioTotals:
        return self.decomposer.total_weight(previous), self.decomposer.total_weight(current)

    def _root_node(
        self,
        previous: RecordSet,
        current: RecordSet,
        totals: PortfolioTotals,
        children: Tuple[TreeNode, ...],
    ) -> TreeNode:
        previous_rate = self.decomposer.weighted_rate(previous)
        current_rate = self.decomposer.weighted_rate(current)
        rate_change = current_rate - previous_rate
        previous_weight, current_weight = totals
        metrics = NodeMetrics(
            previous_rate=previous_rate,
            current_rate=current_rate,
            previous_weight=previous_weight,
            current_weight=current_weight,
            previous_count=previous.height,
            current_count=current.height,
            previous_share=safe_ratio(previous_weight, previous_weight),
            current_share=safe_ratio(current_weight, current_weight),
            yield_impact=rate_change,
            distribution_impact=0.0,
            total_impact=rate_change,
            percent_on_parent=None,
            percent_on_root=100.0,
        )
        return TreeNode(factor=ROOT_FACTOR, value=ROOT_LABEL, path=(), metrics=metrics, children=children)

    @staticmethod
    def _child_node(
        factor: str,
        row: Dict[str, Any],
        path: SegmentPath,
        parent_impact: float,
        root_impact: float,
        children: Tuple[TreeNode, ...],
    ) -> TreeNode:
        yield_impact = to_float(row.get("yield_impact"))
        distribution_impact = to_float(row.get("distribution_impact"))
        total_impact = yield_impact + distribution_impact
        metrics = NodeMetrics(
            previous_rate=to_float(row.get("previous_rate")),
            current_rate=to_float(row.get("current_rate")),
            previous_weight=to_float(row.get("previous_weight")),
            current_weight=to_float(row.get("current_weight")),
            previous_count=int(row.get("previous_count") or 0),
            current_count=int(row.get("current_count") or 0),
            previous_share=to_float(row.get("previous_share")),
            current_share=to_float(row.get("current_share")),
            yield_impact=yield_impact,
            distribution_impact=distribution_impact,
            total_impact=total_impact,
            percent_on_parent=safe_percent(total_impact, parent_impact),
            percent_on_root=safe_percent(total_impact, root_impact),
        )
        return TreeNode(factor=factor, value=row["value"], path=path, metrics=metrics, children=children)

    @staticmethod
    def _order_children(children: List[TreeNode]) -> Tuple[TreeNode, ...]:
        return tuple(sorted(children, key=lambda node: -abs(node.metrics.total_impact_bps)))

    def _segment_rows(
        self,
        previous: RecordSet,
        current: RecordSet,
        factor: str,
        totals: PortfolioTotals,
    ) -> List[Dict[str, Any]]:
        return self.decomposer.segment_impacts(
            previous,
            current,
            factor,
            previous_total_weight=totals[0],
            current_total_weight=totals[1],
        ).to_dicts()

    # ------------------------------------------------------------------
    # Priority mode
    # ------------------------------------------------------------------

    def build_priority_tree(
        self,
        previous: RecordSet,
        current: RecordSet,
        factor_order: Sequence[str],
    ) -> Tuple[TreeNode, ...]:
        """Split on ``factor_order[d]`` at depth ``d`` until the sequence is exhausted."""
        self._validate_periods(previous, current)
        previous, current = align_factor_types(previous, current)
        totals = self._portfolio_totals(previous, current)
        root_impact = self.decomposer.weighted_rate(current) - self.decomposer.weighted_rate(previous)

        children = self._priority_level(
            previous,
            current,
            list(factor_order),
            depth=0,
            path=(),
            parent_impact=root_impact,
            root_impact=root_impact,
            totals=totals,
        )
        return (self._root_node(previous, current, totals, children),)

    def _priority_level(
        self,
        previous: RecordSet,
        current: RecordSet,
        factor_order: List[str],
        depth: int,
        path: SegmentPath,
        parent_impact: float,
        root_impact: float,
        totals: PortfolioTotals,
    ) -> Tuple[TreeNode, ...]:
        if depth >= len(factor_order):
            return ()

        factor = factor_order[depth]
        has_next_level = depth + 1 < len(factor_order)
        children: List[TreeNode] = []
        for row in self._segment_rows(previous, current, factor, totals):
            value = row["value"]
            child_path = path + ((factor, value),)
            grandchildren: Tuple[TreeNode, ...] = ()
            if has_next_level:
                grandchildren = self._priority_level(
                    previous.filter_value(factor, value),
                    current.filter_value(factor, value),
                    factor_order,
                    depth=depth + 1,
                    path=child_path,
                    parent_impact=to_float(row.get("yield_impact")) + to_float(row.get("distribution_impact")),
                    root_impact=root_impact,
                    totals=totals,
                )
            children.append(self._child_node(factor, row, child_path, parent_impact, root_impact, grandchildren))

        return self._order_children(children)

    # ------------------------------------------------------------------
    # Auto-split mode
    # ------------------------------------------------------------------

    def build_auto_tree(
        self,
        previous: RecordSet,
        current: RecordSet,
        candidate_factors: Sequence[str] | None = None,
    ) -> Tuple[TreeNode, ...]:
        """Greedily split on the highest impact-variance factor at every node."""
        self._validate_periods(previous, current)
        previous, current = align_factor_types(previous, current)
        if candidate_factors is None:
            candidate_factors = self.selector.detect_candidates(previous, current)
        totals = self._portfolio_totals(previous, current)
        root_impact = self.decomposer.weighted_rate(current) - self.decomposer.weighted_rate(previous)

        children = self._auto_level(
            previous,
            current,
            list(candidate_factors),
            depth=0,
            path=(),
            parent_impact=root_impact,
            root_impact=root_impact,
            totals=totals,
        )
        return (self._root_node(previous, current, totals, children),)

    def _auto_level(
        self,
        previous: RecordSet,
        current: RecordSet,
        candidate_factors: List[str],
        depth: int,
        path: SegmentPath,
        parent_impact: float,
        root_impact: float,
        totals: PortfolioTotals,
    ) -> Tuple[TreeNode, ...]:
        if depth >= self.max_depth:
            return ()
        if previous.height < self.min_samples or current.height < self.min_samples:
            logger.debug(
                f"Stop at {dict(path)}: {previous.height}/{current.height} records below min_samples={self.min_samples}"
            )
            return ()

        best = self.selector.select_best_factor(
            previous,
            current,
            candidate_factors,
            previous_total_weight=totals[0],
            current_total_weight=totals[1],
        )
        if best is None:
            return ()

        factor = best.factor
        children: List[TreeNode] = []
        for row in self._segment_rows(previous, current, factor, totals):
            value = row["value"]
            child_path = path + ((factor, value),)
            grandchildren = self._auto_level(
                previous.filter_value(factor, value),
                current.filter_value(factor, value),
                candidate_factors,
                depth=depth + 1,
                path=child_path,
                parent_impact=to_float(row.get("yield_impact")) + to_float(row.get("distribution_impact")),
                root_impact=root_impact,
                totals=totals,
            )
            children.append(self._child_node(factor, row, child_path, parent_impact, root_impact, grandchildren))

        return self._order_children(children)
