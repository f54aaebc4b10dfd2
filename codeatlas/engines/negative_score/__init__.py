"""Negative score detector: contributors whose code is soon rewritten by others."""

from codeatlas.engines.negative_score.detector import (
    ContributorScore,
    ReplacementCandidate,
    aggregate_scores,
    detect_replacements,
    is_refactor_message,
    message_signal,
)
from codeatlas.engines.negative_score.runner import NegativeScoreRunner

__all__ = [
    "ContributorScore",
    "NegativeScoreRunner",
    "ReplacementCandidate",
    "aggregate_scores",
    "detect_replacements",
    "is_refactor_message",
    "message_signal",
]
