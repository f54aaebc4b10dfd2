"""Risk analysis: how much a change collides with open pull requests.

Two measures per pair of changesets:

* structural overlap: share of files both touch,
* semantic overlap: on the shared files, how similar the new code is to the
  PR's code (mean over the new vectors of their best cosine match).

Combined risk is ``w * structural + (1 - w) * semantic`` with ``w = 0.4`` by
default. Disjoint changesets score 0 on both.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, field
from itertools import combinations

from codeatlas.core.config import AnalysisConfig
from codeatlas.engines.embedding.similarity import clamp, cosine_similarity

Vectors = Mapping[str, Sequence[Sequence[float]]]


@dataclass(frozen=True)
class OpenPullRequest:
    number: int
    files: frozenset[str]
    # file_path -> vectors of the PR's version of that file
    embeddings: Vectors = field(default_factory=dict)
    title: str | None = None


@dataclass(frozen=True)
class PrRisk:
    pr_number: int
    title: str | None
    structural_overlap: float
    semantic_overlap: float
    risk: float
    conflicting_files: list[str]


@dataclass(frozen=True)
class PrConflict:
    pr_a: int
    pr_b: int
    structural_overlap: float
    semantic_overlap: float
    risk: float
    shared_files: list[str]


@dataclass
class RiskAnalysisResult:
    risk_score: float = 0.0
    structural_overlap: float = 0.0
    semantic_overlap: float = 0.0
    conflicting_prs: list[PrRisk] = field(default_factory=list)
    conflicts: list[PrConflict] = field(default_factory=list)


def structural_overlap(
    changed: Collection[str], other: Collection[str], mode: str = "changed"
) -> float:
    """``|changed ∩ other| / |changed|`` (``mode="changed"``) or Jaccard (``"union"``)."""
    changed, other = set(changed), set(other)
    shared = len(changed & other)
    if not shared:
        return 0.0
    if mode == "union":
        return shared / len(changed | other)
    if mode == "changed":
        return shared / len(changed)
    raise ValueError(f"unknown structural overlap mode: {mode!r}")


def semantic_overlap(shared_files: Collection[str], left: Vectors, right: Vectors) -> float:
    """Mean best-match cosine of *left* against *right* over *shared_files*.

    Files lacking vectors on either side are ignored; 0.0 when none remain.
    """
    per_file = []
    for path in sorted(shared_files):
        ours, theirs = left.get(path), right.get(path)
        if not ours or not theirs:
            continue
        best = [max(cosine_similarity(v, w) for w in theirs) for v in ours]
        per_file.append(sum(best) / len(best))
    if not per_file:
        return 0.0
    return clamp(sum(per_file) / len(per_file))


def combine(structural: float, semantic: float, config: AnalysisConfig) -> float:
    return clamp(config.structural_weight * structural + config.semantic_weight * semantic)


def calculate_risk(
    changed_files: Collection[str],
    new_embeddings: Vectors,
    open_prs: Sequence[OpenPullRequest],
    config: AnalysisConfig | None = None,
) -> RiskAnalysisResult:
    """Score a push (*changed_files* + *new_embeddings*) against every open PR.

    PRs are ranked by combined risk descending, PR number ascending.
    """
    config = config or AnalysisConfig()
    changed = set(changed_files)
    risks = []
    for pr in open_prs:
        shared = changed & pr.files
        structural = structural_overlap(changed, pr.files, config.structural_overlap_mode)
        semantic = semantic_overlap(shared, new_embeddings, pr.embeddings) if shared else 0.0
        risks.append(
            PrRisk(
                pr_number=pr.number,
                title=pr.title,
                structural_overlap=structural,
                semantic_overlap=semantic,
                risk=combine(structural, semantic, config) if shared else 0.0,
                conflicting_files=sorted(shared),
            )
        )
    risks.sort(key=lambda r: (-r.risk, r.pr_number))

    result = RiskAnalysisResult(
        conflicting_prs=risks, conflicts=detect_pr_conflicts(open_prs, config)
    )
    if risks:
        top = risks[0]
        result.risk_score = top.risk
        result.structural_overlap = top.structural_overlap
        result.semantic_overlap = top.semantic_overlap
    return result


def detect_pr_conflicts(
    open_prs: Sequence[OpenPullRequest], config: AnalysisConfig | None = None
) -> list[PrConflict]:
    """Pairs of open PRs sharing at least one file, riskiest first.

    In ``changed`` mode the smaller PR is the denominator, so a PR fully
    contained in another scores 1.0 structurally.
    """
    config = config or AnalysisConfig()
    conflicts = []
    for a, b in combinations(sorted(open_prs, key=lambda p: p.number), 2):
        shared = a.files & b.files
        if not shared:
            continue
        if config.structural_overlap_mode == "union":
            structural = len(shared) / len(a.files | b.files)
        else:
            structural = len(shared) / min(len(a.files), len(b.files))
        semantic = semantic_overlap(shared, a.embeddings, b.embeddings)
        conflicts.append(
            PrConflict(
                pr_a=a.number,
                pr_b=b.number,
                structural_overlap=structural,
                semantic_overlap=semantic,
                risk=combine(structural, semantic, config),
                shared_files=sorted(shared),
            )
        )
    conflicts.sort(key=lambda c: (-c.risk, c.pr_a, c.pr_b))
    return conflicts
