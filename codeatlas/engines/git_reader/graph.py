"""Commit graph ordering.

A commit's generation is one more than the highest generation among its
parents (roots are generation 1), so an ancestor always has a lower
generation than its descendants.  Sorting on ``(committed_at, generation)``
keeps commit order stable when rebases or cherry-picks stamp many commits
with the same committer second.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping

from codeatlas.engines.git_reader.models import CommitInfo


def assign_generations(
    commits: Iterable[CommitInfo], known: Mapping[str, int] | None = None
) -> list[CommitInfo]:
    """Return *commits* (same order) with ``generation`` filled in.

    Parents outside *commits* take their generation from *known*; a parent
    found in neither counts as generation 0 (shallow or unknown base).
    """
    commits = list(commits)
    known = known or {}
    by_sha = {c.sha: c for c in commits}
    out: dict[str, int] = {}

    for commit in commits:
        stack = [commit.sha]
        while stack:
            sha = stack[-1]
            if sha in out:
                stack.pop()
                continue
            pending = [p for p in by_sha[sha].parents if p in by_sha and p not in out]
            if pending:
                stack.extend(pending)
                continue
            out[sha] = 1 + max(
                (out[p] if p in out else known.get(p, 0) for p in by_sha[sha].parents),
                default=0,
            )
            stack.pop()

    return [dataclasses.replace(c, generation=out[c.sha]) for c in commits]


def outside_parents(commits: Iterable[CommitInfo]) -> set[str]:
    """Parent shas referenced by *commits* that are not themselves in *commits*."""
    commits = list(commits)
    inside = {c.sha for c in commits}
    return {p for c in commits for p in c.parents if p not in inside}
