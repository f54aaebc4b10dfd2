"""Negative score: how often a contributor's code is soon rewritten by someone else.

Adjacent revisions of a unit form a replacement when the new code is
semantically far from the old one (cosine below ``low_similarity_threshold``),
a different author wrote it, and it landed within ``replacement_window``.
Revisions whose message reads as a refactor/cleanup are ignored by default.
Each replacement charges the *original* author
``(1 - similarity) * message_signal``.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from codeatlas.core.config import AnalysisConfig
from codeatlas.engines.embedding.revisions import UnitRevision, group_by_unit
from codeatlas.engines.embedding.similarity import cosine_similarity

FIX_PATTERN = re.compile(r"\b(fix|bug|hotfix|patch|issue|error)\b", re.IGNORECASE)
REVERT_PATTERN = re.compile(r"\b(revert|rollback|undo)\b", re.IGNORECASE)
REFACTOR_PATTERN = re.compile(
    r"\b(refactor|cleanup|clean up|optimize|style|format|lint)\b", re.IGNORECASE
)


@dataclass(frozen=True)
class ReplacementCandidate:
    original: UnitRevision
    replacement: UnitRevision
    similarity: float
    signal: float
    is_fix_signal: bool

    @property
    def time_delta(self) -> timedelta:
        return self.replacement.committed_at - self.original.committed_at

    @property
    def event_score(self) -> float:
        return (1.0 - self.similarity) * self.signal

    def to_row(self, repository_id: uuid.UUID) -> dict:
        """Column values for ``code_replacement_events``."""
        return {
            "repository_id": repository_id,
            "file_id": self.original.file_id,
            "unit_name": self.original.unit_name,
            "original_commit_id": self.original.commit_id,
            "replacement_commit_id": self.replacement.commit_id,
            "original_author_name": self.original.author_name,
            "replacement_author_name": self.replacement.author_name,
            "similarity": self.similarity,
            "time_delta_seconds": self.time_delta.total_seconds(),
            "commit_message_signal": self.signal,
            "is_fix_signal": self.is_fix_signal,
            "event_score": self.event_score,
        }


@dataclass(frozen=True)
class ContributorScore:
    contributor_name: str
    raw_score: float
    normalized_score: float
    event_count: int
    total_commits: int

    def to_row(self, calculated_at: datetime | None = None) -> dict:
        return {
            "contributor_name": self.contributor_name,
            "raw_score": self.raw_score,
            "normalized_score": self.normalized_score,
            "event_count": self.event_count,
            "total_commits": self.total_commits,
            "last_calculated_at": calculated_at or datetime.now(timezone.utc),
        }


def message_signal(message: str, config: AnalysisConfig) -> tuple[float, bool]:
    """Return ``(multiplier, is_fix_signal)`` for a replacement commit message."""
    if REVERT_PATTERN.search(message or ""):
        return config.revert_signal_boost, True
    if FIX_PATTERN.search(message or ""):
        return config.fix_signal_boost, True
    return 1.0, False


def is_refactor_message(message: str) -> bool:
    return bool(REFACTOR_PATTERN.search(message or ""))


def detect_replacements(
    revisions: Iterable[UnitRevision], config: AnalysisConfig | None = None
) -> list[ReplacementCandidate]:
    """Scan adjacent revisions of every unit for suspicious rewrites."""
    config = config or AnalysisConfig()
    candidates = []
    for revs in group_by_unit(revisions).values():
        for prev, cur in zip(revs, revs[1:]):
            if prev.author_name == cur.author_name:
                continue
            gap = cur.committed_at - prev.committed_at
            if gap < timedelta(0) or gap > config.replacement_window:
                continue
            if config.exclude_refactor_commits and is_refactor_message(cur.message):
                continue
            similarity = cosine_similarity(prev.embedding, cur.embedding)
            if similarity >= config.low_similarity_threshold:
                continue
            signal, is_fix = message_signal(cur.message, config)
            candidates.append(
                ReplacementCandidate(
                    original=prev,
                    replacement=cur,
                    similarity=similarity,
                    signal=signal,
                    is_fix_signal=is_fix,
                )
            )
    return candidates


def aggregate_scores(
    events: Iterable[ReplacementCandidate], commit_counts: Mapping[str, int]
) -> list[ContributorScore]:
    """One score per contributor, highest normalized score first.

    ``normalized = raw / max(1, total_commits / 10)`` so prolific committers are
    compared per ten commits. Contributors without events score 0.
    """
    raw: dict[str, float] = {author: 0.0 for author in commit_counts}
    counts: dict[str, int] = {author: 0 for author in commit_counts}
    for event in events:
        author = event.original.author_name
        raw[author] = raw.get(author, 0.0) + event.event_score
        counts[author] = counts.get(author, 0) + 1

    scores = []
    for author, score in raw.items():
        total = commit_counts.get(author, 0)
        scores.append(
            ContributorScore(
                contributor_name=author,
                raw_score=score,
                normalized_score=score / max(1.0, total / 10.0),
                event_count=counts[author],
                total_commits=total,
            )
        )
    scores.sort(key=lambda s: (-s.normalized_score, s.contributor_name))
    return scores
