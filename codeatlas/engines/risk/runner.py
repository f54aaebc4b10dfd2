"""RiskRunner: load open PRs with their vectors, score, store per-PR risk."""

from __future__ import annotations

import uuid
from collections.abc import Collection

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.core.config import AnalysisConfig
from codeatlas.engines.risk.analyzer import (
    OpenPullRequest,
    PrConflict,
    RiskAnalysisResult,
    Vectors,
    calculate_risk,
    detect_pr_conflicts,
)
from codeatlas.services.embedding_service import EmbeddingService
from codeatlas.services.pull_request_service import PullRequestService

log = structlog.get_logger("codeatlas.engine")


class RiskRunner:
    def __init__(
        self,
        pull_request_service: PullRequestService,
        embedding_service: EmbeddingService,
        config: AnalysisConfig | None = None,
    ) -> None:
        self._pull_request_service = pull_request_service
        self._embedding_service = embedding_service
        self._config = config or AnalysisConfig()

    @property
    def config(self) -> AnalysisConfig:
        return self._config

    async def load_open_prs(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        exclude_shas: Collection[str] = (),
    ) -> list[OpenPullRequest]:
        """Open PRs with the vectors of their own file versions.

        Commits in *exclude_shas* (the change being scored) never stand in
        for a PR's version of a file.
        """
        prs = []
        for pr, files in await self._pull_request_service.list_open_with_files(
            session, repository_id
        ):
            vectors = await self._embedding_service.vectors_for_pull_request(
                session, repository_id, pr.head_sha, files, exclude_shas=exclude_shas
            )
            prs.append(
                OpenPullRequest(
                    number=pr.pr_number,
                    files=frozenset(files),
                    embeddings=vectors,
                    title=pr.title,
                )
            )
        return prs

    async def calculate_risk(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        changed_files: Collection[str],
        new_embeddings: Vectors,
        exclude_shas: Collection[str] = (),
    ) -> RiskAnalysisResult:
        """Score a push against the repository's open PRs and store each PR's risk.

        *exclude_shas* are the push's own commits.
        """
        prs = await self.load_open_prs(session, repository_id, exclude_shas)
        result = calculate_risk(changed_files, new_embeddings, prs, self._config)
        await self._pull_request_service.store_risk_scores(
            session, repository_id, {r.pr_number: r.risk for r in result.conflicting_prs}
        )
        log.info(
            "risk.calculated",
            repository_id=str(repository_id),
            open_prs=len(prs),
            risk_score=round(result.risk_score, 4),
            conflicts=len(result.conflicts),
        )
        return result

    async def preview_risk(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        changed_files: Collection[str],
        new_embeddings: Vectors,
        exclude_shas: Collection[str] = (),
    ) -> RiskAnalysisResult:
        """Score like :meth:`calculate_risk` without touching the stored PR scores."""
        prs = await self.load_open_prs(session, repository_id, exclude_shas)
        return calculate_risk(changed_files, new_embeddings, prs, self._config)

    async def pr_conflicts(
        self, session: AsyncSession, repository_id: uuid.UUID
    ) -> list[PrConflict]:
        prs = await self.load_open_prs(session, repository_id)
        return detect_pr_conflicts(prs, self._config)
