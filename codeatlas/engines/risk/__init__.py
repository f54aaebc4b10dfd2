"""Risk analysis engine: push vs open PRs and PR vs PR overlap."""

from codeatlas.engines.risk.analyzer import (
    OpenPullRequest,
    PrConflict,
    PrRisk,
    RiskAnalysisResult,
    calculate_risk,
    detect_pr_conflicts,
    semantic_overlap,
    structural_overlap,
)
from codeatlas.engines.risk.runner import RiskRunner

__all__ = [
    "OpenPullRequest",
    "PrConflict",
    "PrRisk",
    "RiskAnalysisResult",
    "RiskRunner",
    "calculate_risk",
    "detect_pr_conflicts",
    "semantic_overlap",
    "structural_overlap",
]
