"""Tests for the semantic ownership calculator (pure, no DB)."""

from __future__ import annotations

import dataclasses
import math
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from codeatlas.engines.embedding.revisions import UnitRevision, group_by_unit
from codeatlas.engines.ownership.calculator import calculate_ownership, unit_distribution

T0 = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)
FILE_ID = uuid.uuid4()


def _rev(author: str, embedding, *, hours: int = 0, unit: str = "parse", file_id=FILE_ID):
    return UnitRevision(
        file_id=file_id,
        unit_name=unit,
        commit_id=uuid.uuid4(),
        sha=f"{hours:040x}",
        author_name=author,
        committed_at=T0 + timedelta(hours=hours),
        embedding=list(embedding),
    )


def _angle(degrees: float) -> list[float]:
    rad = math.radians(degrees)
    return [math.cos(rad), math.sin(rad)]


# ── unit_distribution ────────────────────────────────────────────────────


class TestUnitDistribution:
    def test_empty(self):
        assert unit_distribution([]) == {}

    def test_single_author_owns_everything(self):
        assert unit_distribution([_rev("alice", [1.0, 0.0])]) == {"alice": 1.0}

    def test_identical_revision_moves_nothing(self):
        revs = [_rev("alice", [1.0, 0.0]), _rev("bob", [1.0, 0.0], hours=1)]
        assert unit_distribution(revs) == {"alice": 1.0}

    def test_orthogonal_rewrite_moves_everything(self):
        revs = [_rev("alice", [1.0, 0.0]), _rev("bob", [0.0, 1.0], hours=1)]
        dist = unit_distribution(revs)
        assert dist["bob"] == pytest.approx(1.0)
        assert dist["alice"] == pytest.approx(0.0)

    def test_partial_rewrite_splits_by_delta(self):
        # cos(60°) = 0.5 → delta 0.5
        revs = [_rev("alice", _angle(0)), _rev("bob", _angle(60), hours=1)]
        dist = unit_distribution(revs)
        assert dist["alice"] == pytest.approx(0.5)
        assert dist["bob"] == pytest.approx(0.5)

    def test_returning_author_accumulates(self):
        revs = [
            _rev("alice", _angle(0)),
            _rev("bob", _angle(60), hours=1),
            _rev("alice", _angle(120), hours=2),
        ]
        dist = unit_distribution(revs)
        assert dist["alice"] == pytest.approx(0.75)
        assert dist["bob"] == pytest.approx(0.25)


# ── calculate_ownership ──────────────────────────────────────────────────


class TestCalculateOwnership:
    def test_nothing_to_attribute(self):
        assert calculate_ownership([]) == {}
        assert calculate_ownership([], {"alice": 0}) == {}

    def test_falls_back_to_change_counts(self):
        shares = calculate_ownership([], {"alice": 3, "bob": 1})
        assert shares == {"alice": pytest.approx(0.75), "bob": pytest.approx(0.25)}

    def test_file_is_mean_of_units(self):
        revisions = [
            _rev("alice", [1.0, 0.0], unit="parse"),
            _rev("bob", [0.0, 1.0], hours=1, unit="parse"),
            _rev("alice", [1.0, 0.0], unit="render"),
        ]
        shares = calculate_ownership(revisions)
        assert shares["alice"] == pytest.approx(0.5)
        assert shares["bob"] == pytest.approx(0.5)

    def test_sorted_by_share_then_name(self):
        revisions = [
            _rev("carol", [1.0, 0.0], unit="a"),
            _rev("bob", [1.0, 0.0], unit="b"),
            _rev("alice", [0.0, 1.0], unit="c"),
            _rev("alice", [0.0, 1.0], unit="d"),
        ]
        assert list(calculate_ownership(revisions)) == ["alice", "bob", "carol"]

    def test_order_of_input_does_not_matter(self):
        revisions = [
            _rev("alice", _angle(0)),
            _rev("bob", _angle(45), hours=1),
            _rev("carol", _angle(80), hours=2),
        ]
        forward = calculate_ownership(revisions)
        backward = calculate_ownership(list(reversed(revisions)))
        assert forward == pytest.approx(backward)

    @pytest.mark.parametrize("seed", range(5))
    def test_shares_sum_to_one(self, seed):
        authors = ["alice", "bob", "carol", "dave"]
        revisions = []
        for i in range(12):
            unit = f"fn_{(i + seed) % 3}"
            revisions.append(
                _rev(authors[(i * (seed + 1)) % 4], _angle(i * 17 + seed * 11), hours=i, unit=unit)
            )
        shares = calculate_ownership(revisions)
        assert shares
        assert sum(shares.values()) == pytest.approx(1.0)
        assert all(0.0 < s <= 1.0 for s in shares.values())


def test_group_by_unit_orders_by_commit_time():
    late = _rev("bob", [0.0, 1.0], hours=5)
    early = _rev("alice", [1.0, 0.0], hours=1)
    other_file = _rev("carol", [1.0, 0.0], file_id=uuid.uuid4())
    groups = group_by_unit([late, other_file, early])
    assert groups[(FILE_ID, "parse")] == [early, late]
    assert len(groups) == 2


def test_group_by_unit_breaks_same_second_ties_by_generation():
    # "f…" sorts after "0…", but the parent still comes first
    parent = dataclasses.replace(_rev("alice", [1.0, 0.0]), sha="f" * 40, generation=7)
    child = dataclasses.replace(_rev("bob", [0.0, 1.0]), sha="0" * 40, generation=8)
    groups = group_by_unit([child, parent])
    assert groups[(FILE_ID, "parse")] == [parent, child]
