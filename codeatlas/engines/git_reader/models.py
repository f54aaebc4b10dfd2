"""Plain data returned by the git history reader."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class BranchInfo:
    name: str
    head_sha: str


@dataclass(frozen=True)
class CommitInfo:
    sha: str
    author_name: str
    author_email: str
    committed_at: datetime
    message: str
    parents: tuple[str, ...] = field(default_factory=tuple)
    # filled in by graph.assign_generations; 0 until then
    generation: int = 0

    @property
    def is_root(self) -> bool:
        return not self.parents


@dataclass(frozen=True)
class ChangedFile:
    """One path touched by a commit, diffed against its first parent."""

    path: str
    additions: int
    deletions: int
