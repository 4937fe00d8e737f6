"""Application service comparing a priority analysis with an auto-split analysis."""

from __future__ import annotations

from typing import Any, Dict, List

from roi_drivers.application.analysis_service import AnalysisResult

RECOMMENDATIONS: List[str] = [
    "Use User-Priority analysis when you have domain expertise about factor importance",
    "Use Auto-Max Split analysis to discover unexpected patterns in your data",
    "Compare both results to validate your business assumptions",
    "Focus on drivers that appear significant in both analyses for highest confidence",
]


def top_features(importance: Dict[str, float] | None, limit: int = 3) -> List[str]:
    if not importance:
        return []
    ordered = sorted(importance.items(), key=lambda item: -item[1])
    return [name for name, _ in ordered[:limit]]


def compare_analyses(priority: AnalysisResult, auto: AnalysisResult) -> Dict[str, Any]:
    priority_nodes = priority.metadata.total_nodes
    auto_nodes = auto.metadata.total_nodes
    return {
        "summary": {
            "user_priority": {
                "total_nodes": priority_nodes,
                "max_depth": priority.metadata.max_depth,
                "factor_order": list(priority.factor_order or ()),
            },
            "auto_max_split": {
                "total_nodes": auto_nodes,
                "max_depth": auto.metadata.max_depth,
                "top_features": top_features(auto.feature_importance),
            },
        },
        "differences": {
            "approach": (
                "User-Priority follows a predefined factor sequence, while Auto-Max Split "
                "picks the factor with the largest impact variance at each node"
            ),
            "structure": f"User-Priority created {priority_nodes} nodes vs Auto-Max Split's {auto_nodes} nodes",
        },
        "recommendations": list(RECOMMENDATIONS),
    }
