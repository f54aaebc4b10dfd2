"""Tests for commit generation numbers (pure, no git)."""

from __future__ import annotations

from datetime import datetime, timezone

from codeatlas.engines.git_reader import assign_generations
from codeatlas.engines.git_reader.graph import outside_parents
from codeatlas.engines.git_reader.models import CommitInfo

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _commit(sha: str, *parents: str) -> CommitInfo:
    return CommitInfo(sha * 40, "alice", "alice@x.io", T0, "msg", tuple(p * 40 for p in parents))


def _generations(commits, known=None) -> dict[str, int]:
    return {c.sha[0]: c.generation for c in assign_generations(commits, known)}


def test_linear_history_newest_first():
    commits = [_commit("c", "b"), _commit("b", "a"), _commit("a")]
    assert _generations(commits) == {"c": 3, "b": 2, "a": 1}


def test_order_is_preserved():
    commits = [_commit("a"), _commit("c", "b"), _commit("b", "a")]
    assert [c.sha[0] for c in assign_generations(commits)] == ["a", "c", "b"]


def test_merge_takes_longest_parent_line():
    #   a - b - c
    #    \       \
    #     d ----- m
    commits = [
        _commit("m", "c", "d"),
        _commit("d", "a"),
        _commit("c", "b"),
        _commit("b", "a"),
        _commit("a"),
    ]
    assert _generations(commits) == {"m": 4, "d": 2, "c": 3, "b": 2, "a": 1}


def test_known_parents_offset_the_batch():
    commits = [_commit("e", "d"), _commit("d", "c")]
    assert _generations(commits, {"c" * 40: 10}) == {"e": 12, "d": 11}


def test_unknown_parent_counts_as_zero():
    # shallow boundary: the parent was never fetched
    assert _generations([_commit("b", "a")]) == {"b": 1}


def test_outside_parents():
    commits = [_commit("m", "c", "d"), _commit("d", "a")]
    assert outside_parents(commits) == {"c" * 40, "a" * 40}
    assert outside_parents([]) == set()
