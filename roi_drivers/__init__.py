"""ROI change driver attribution package."""

from .analytics import count_nodes, export_to_table, feature_importance, impact_summary, max_depth
from .application import (
    AnalysisResult,
    AnalysisSession,
    SessionStore,
    compare_analyses,
    run_auto_analysis,
    run_priority_analysis,
)
from .domain import RecordSet, TreeNode
from .factor_selection import FactorSelector
from .impact import ImpactDecomposer
from .preparation import PreparedData, prepare_for_analysis
from .tree import TreeBuilder

__all__ = [
    "RecordSet",
    "TreeNode",
    "ImpactDecomposer",
    "FactorSelector",
    "TreeBuilder",
    "count_nodes",
    "max_depth",
    "feature_importance",
    "impact_summary",
    "export_to_table",
    "PreparedData",
    "prepare_for_analysis",
    "AnalysisResult",
    "run_priority_analysis",
    "run_auto_analysis",
    "compare_analyses",
    "AnalysisSession",
    "SessionStore",
]
