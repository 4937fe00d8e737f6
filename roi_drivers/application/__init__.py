"""Application layer package."""

from .analysis_service import AnalysisResult, run_auto_analysis, run_priority_analysis
from .comparison_service import compare_analyses
from .session import AnalysisSession, SessionStore

__all__ = [
    "AnalysisResult",
    "run_priority_analysis",
    "run_auto_analysis",
    "compare_analyses",
    "AnalysisSession",
    "SessionStore",
]
