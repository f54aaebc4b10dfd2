"""NegativeScoreRunner: detect replacements and rebuild contributor scores."""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codeatlas.core.config import AnalysisConfig
from codeatlas.engines.embedding.revisions import UnitRevision
from codeatlas.engines.negative_score.detector import (
    ContributorScore,
    aggregate_scores,
    detect_replacements,
)
from codeatlas.services.embedding_service import EmbeddingService
from codeatlas.services.history_service import HistoryService
from codeatlas.services.negative_score_service import NegativeScoreService
from codeatlas.services.repository_service import RepositoryService

log = structlog.get_logger("codeatlas.engine")

_MAX_CONCURRENCY = 3


class NegativeScoreRunner:
    def __init__(
        self,
        repository_service: RepositoryService,
        embedding_service: EmbeddingService,
        history_service: HistoryService,
        negative_score_service: NegativeScoreService,
        config: AnalysisConfig | None = None,
    ) -> None:
        self._repository_service = repository_service
        self._embedding_service = embedding_service
        self._history_service = history_service
        self._negative_score_service = negative_score_service
        self._config = config or AnalysisConfig()
        self._last_pass: datetime | None = None

    async def calculate_negative_scores_for_repository(
        self, session: AsyncSession, repository_id: uuid.UUID
    ) -> list[ContributorScore]:
        """Recompute every contributor score of one repository.

        Events are insert-if-absent and the score rows are swapped inside the
        caller's transaction, so repeated runs converge on identical rows.
        """
        await self._repository_service.get(session, repository_id)
        rows = await self._embedding_service.revisions_for_repository(session, repository_id)
        candidates = detect_replacements(
            (UnitRevision.from_row(r) for r in rows), self._config
        )
        inserted = await self._negative_score_service.record_events(
            session, [c.to_row(repository_id) for c in candidates]
        )

        commit_counts = await self._history_service.commit_counts(session, repository_id)
        scores = aggregate_scores(candidates, commit_counts)
        now = datetime.now(timezone.utc)
        await self._negative_score_service.replace_scores(
            session, repository_id, [s.to_row(now) for s in scores]
        )
        log.info(
            "negative_score.calculated",
            repository_id=str(repository_id),
            events=len(candidates),
            new_events=inserted,
            contributors=len(scores),
        )
        return scores

    async def run_batch(self, session_factory: async_sessionmaker[AsyncSession]) -> int:
        """Recompute repositories refreshed since the previous pass; returns how many."""
        started = datetime.now(timezone.utc)
        async with session_factory() as session:
            async with session.begin():
                repos = await self._repository_service.list_refreshed_since(
                    session, self._last_pass
                )
        if not repos:
            self._last_pass = started
            return 0

        sem = asyncio.Semaphore(_MAX_CONCURRENCY)

        async def _run_one(repository_id: uuid.UUID) -> bool:
            async with sem:
                try:
                    async with session_factory() as session:
                        async with session.begin():
                            await self.calculate_negative_scores_for_repository(
                                session, repository_id
                            )
                    return True
                except Exception as exc:
                    log.error(
                        "negative_score.failed", repository_id=str(repository_id), error=str(exc)
                    )
                    return False

        results = await asyncio.gather(*[_run_one(r.id) for r in repos])
        self._last_pass = started
        return sum(results)
