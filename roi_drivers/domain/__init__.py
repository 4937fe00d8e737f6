"""Domain layer package."""

from .models import (
    FactorContribution,
    FactorScore,
    ImpactDecomposition,
    ImpactSummary,
    NodeMetrics,
    RecordSet,
    TreeNode,
)

__all__ = [
    "RecordSet",
    "ImpactDecomposition",
    "NodeMetrics",
    "TreeNode",
    "FactorScore",
    "FactorContribution",
    "ImpactSummary",
]
