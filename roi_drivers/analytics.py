"""Tree Analytics: post-processing over a finished impact tree."""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

import polars as pl

from roi_drivers.config import PATH_SEPARATOR
from roi_drivers.domain.models import FactorContribution, ImpactSummary, RecordSet, TreeNode
from roi_drivers.factor_selection import FactorSelector

TABLE_COLUMNS: List[str] = [
    "depth",
    "path",
    "factor",
    "value",
    "previous_rate",
    "current_rate",
    "rate_change",
    "rate_change_bps",
    "previous_weight",
    "current_weight",
    "previous_count",
    "current_count",
    "previous_share",
    "current_share",
    "yield_impact",
    "distribution_impact",
    "total_impact",
    "yield_impact_bps",
    "distribution_impact_bps",
    "total_impact_bps",
    "percent_on_parent",
    "percent_on_root",
]


def count_nodes(tree: Sequence[TreeNode] | None) -> int:
    if not tree:
        return 0
    return sum(1 + count_nodes(node.children) for node in tree)


def max_depth(tree: Sequence[TreeNode] | None) -> int:
    """Number of node levels: an empty list is 0, a lone root is 1."""
    if not tree:
        return 0
    return 1 + max(max_depth(node.children) for node in tree)


def feature_importance(
    previous: RecordSet,
    current: RecordSet,
    candidate_factors: Sequence[str] | None = None,
    selector: FactorSelector | None = None,
) -> Dict[str, float]:
    return (selector or FactorSelector()).feature_importance(previous, current, candidate_factors)


def _iter_nodes(tree: Sequence[TreeNode] | None):
    for node in tree or ():
        yield node
        yield from _iter_nodes(node.children)


def impact_summary(tree: Sequence[TreeNode] | None) -> ImpactSummary:
    """Sum impacts over every non-root node, regardless of depth.

    Nested levels re-decompose their parents, so the totals count each
    branch once per level it appears in.
    """
    total_yield = 0.0
    total_distribution = 0.0
    contributions: Dict[str, FactorContribution] = {}

    for node in _iter_nodes(tree):
        if node.is_root:
            continue
        metrics = node.metrics
        total_yield += metrics.yield_impact
        total_distribution += metrics.distribution_impact

        item = contributions.setdefault(node.factor, FactorContribution())
        item.yield_impact += metrics.yield_impact
        item.distribution_impact += metrics.distribution_impact
        item.total_impact += metrics.total_impact

    return ImpactSummary(
        total_yield_impact=total_yield,
        total_distribution_impact=total_distribution,
        factor_contributions=contributions,
    )


def _table_rows(nodes: Sequence[TreeNode], parent_path: List[str], depth: int, out: List[Dict[str, Any]]) -> None:
    for node in nodes:
        path = parent_path + [f"{node.factor}:{node.value}"]
        row: Dict[str, Any] = {
            "depth": depth,
            "path": PATH_SEPARATOR.join(path),
            "factor": node.factor,
            "value": node.value,
        }
        row.update(node.metrics.to_dict())
        out.append(row)
        _table_rows(node.children, path, depth + 1, out)


def export_to_table(tree: Sequence[TreeNode] | None) -> List[Dict[str, Any]]:
    """Depth-first rows, one per node, with the full factor:value path."""
    rows: List[Dict[str, Any]] = []
    _table_rows(tree or (), [], 0, rows)
    return [{column: row.get(column) for column in TABLE_COLUMNS} for row in rows]


def table_frame(tree: Sequence[TreeNode] | None) -> pl.DataFrame:
    rows = export_to_table(tree)
    if not rows:
        return pl.DataFrame(schema={column: pl.Utf8 for column in TABLE_COLUMNS})
    # Mixed value types across factors render as text.
    return pl.DataFrame(
        [{**row, "value": None if row["value"] is None else str(row["value"])} for row in rows],
        infer_schema_length=None,
    ).select(TABLE_COLUMNS)
