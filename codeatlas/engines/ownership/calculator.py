"""Semantic ownership: who wrote the code that is in a file now.

Each unit starts fully owned by its first author. A later revision moves a
share equal to its semantic delta ``1 - cos(prev, new)`` to the reviser,
scaling every earlier share down by ``1 - delta``. Cosmetic edits move
almost nothing; a rewrite moves almost everything. A file's ownership is
the mean of its units' distributions.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from codeatlas.engines.embedding.revisions import UnitRevision, group_by_unit
from codeatlas.engines.embedding.similarity import clamp, cosine_similarity

_EPSILON = 1e-12


def unit_distribution(revisions: list[UnitRevision]) -> dict[str, float]:
    """Ownership of one unit from its revisions in commit order."""
    if not revisions:
        return {}
    dist = {revisions[0].author_name: 1.0}
    for prev, cur in zip(revisions, revisions[1:]):
        delta = clamp(1.0 - cosine_similarity(prev.embedding, cur.embedding))
        if delta <= 0.0:
            continue
        dist = {author: share * (1.0 - delta) for author, share in dist.items()}
        dist[cur.author_name] = dist.get(cur.author_name, 0.0) + delta
    return dist


def _normalize(shares: Mapping[str, float]) -> dict[str, float]:
    shares = {a: s for a, s in shares.items() if s > _EPSILON}
    total = sum(shares.values())
    if total <= 0.0:
        return {}
    ordered = sorted(shares.items(), key=lambda kv: (-kv[1], kv[0]))
    return {author: share / total for author, share in ordered}


def calculate_ownership(
    revisions: Iterable[UnitRevision],
    change_counts: Mapping[str, int] | None = None,
) -> dict[str, float]:
    """Return ``author -> share`` for one file; shares sum to 1.

    With no embeddings the share falls back to the number of file changes
    per author in *change_counts*. Returns ``{}`` when there is nothing to
    attribute.
    """
    units = group_by_unit(revisions)
    if not units:
        counts = {a: float(n) for a, n in (change_counts or {}).items() if n > 0}
        return _normalize(counts)

    totals: dict[str, float] = {}
    for revs in units.values():
        for author, share in unit_distribution(revs).items():
            totals[author] = totals.get(author, 0.0) + share
    return _normalize({a: s / len(units) for a, s in totals.items()})
