"""IncrementalRunner: drain the webhook queue into incremental analyses.

Each claimed item ends ``done`` or ``failed``; a failed item is retried with
exponential backoff until ``max_retries`` and then left failed for good.
Items of the same repository are processed one after another, in claim
order, so consecutive pushes are applied in the order they arrived.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codeatlas.core.config import AnalysisConfig
from codeatlas.engines.hosting.github_client import STATUS_CONTEXT, GitHubClient
from codeatlas.engines.incremental.payload import (
    PushEvent,
    parse_pull_request,
    parse_push,
    repository_full_name,
)
from codeatlas.engines.ingestion.errors import describe_error
from codeatlas.engines.ingestion.orchestrator import IngestionOrchestrator
from codeatlas.engines.risk.analyzer import RiskAnalysisResult
from codeatlas.engines.risk.runner import RiskRunner
from codeatlas.models.repository import Repository
from codeatlas.models.webhook_queue_item import WebhookQueueItem
from codeatlas.services.pull_request_service import PullRequestService
from codeatlas.services.repository_service import RepositoryService
from codeatlas.services.webhook_queue_service import WebhookQueueService

log = structlog.get_logger("codeatlas.engine")

_MAX_CONCURRENCY = 4


class IncrementalRunner:
    def __init__(
        self,
        queue_service: WebhookQueueService,
        repository_service: RepositoryService,
        pull_request_service: PullRequestService,
        orchestrator: IngestionOrchestrator,
        risk_runner: RiskRunner,
        hosting: GitHubClient | None = None,
        config: AnalysisConfig | None = None,
    ) -> None:
        self._queue_service = queue_service
        self._repository_service = repository_service
        self._pull_request_service = pull_request_service
        self._orchestrator = orchestrator
        self._risk_runner = risk_runner
        self._hosting = hosting
        self._config = config or AnalysisConfig()

    async def process_one(
        self, session_factory: async_sessionmaker[AsyncSession], item: WebhookQueueItem
    ) -> str:
        """Handle one claimed item; returns what was done with it.

        Raises on failure; the caller records the attempt on the queue row.
        """
        if item.event_type == "push":
            return await self._handle_push(session_factory, item.payload)
        if item.event_type == "pull_request":
            return await self._handle_pull_request(session_factory, item.payload)
        log.info("incremental.event_ignored", item_id=str(item.id), event_type=item.event_type)
        return "ignored"

    async def run_batch(
        self, session_factory: async_sessionmaker[AsyncSession], limit: int | None = None
    ) -> int:
        """Claim up to *limit* items and process them; returns how many succeeded."""
        limit = limit or self._queue_service.config.batch_size
        items: list[WebhookQueueItem] = []
        for _ in range(limit):
            async with _transaction(session_factory) as session:
                item = await self._queue_service.claim_next(session)
            if item is None:
                break
            items.append(item)
        if not items:
            return 0

        lanes: dict[str, list[WebhookQueueItem]] = {}
        for item in items:
            key = repository_full_name(item.payload) or str(item.id)
            lanes.setdefault(key.lower(), []).append(item)

        sem = asyncio.Semaphore(_MAX_CONCURRENCY)

        async def _run_lane(lane: list[WebhookQueueItem]) -> int:
            async with sem:
                done = 0
                for queued in lane:
                    done += await self._settle(session_factory, queued)
                return done

        results = await asyncio.gather(*[_run_lane(lane) for lane in lanes.values()])
        return sum(results)

    async def recover(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Startup recovery: requeue stale items and fail repositories left mid-run."""
        async with _transaction(session_factory) as session:
            await self._queue_service.recover_stale(session)
        await self._orchestrator.recover_interrupted()

    # ── handlers ──────────────────────────────────────────────────────────

    async def _settle(
        self, session_factory: async_sessionmaker[AsyncSession], item: WebhookQueueItem
    ) -> int:
        try:
            outcome = await self.process_one(session_factory, item)
        except Exception as exc:
            log.error(
                "incremental.item_failed",
                item_id=str(item.id),
                event_type=item.event_type,
                error=describe_error(exc),
                exc_info=True,
            )
            async with _transaction(session_factory) as session:
                await self._queue_service.fail(
                    session, item.id, describe_error(exc), item.retry_count
                )
            return 0
        async with _transaction(session_factory) as session:
            await self._queue_service.complete(session, item.id)
        log.info("incremental.item_done", item_id=str(item.id), outcome=outcome)
        return 1

    async def _handle_push(
        self, session_factory: async_sessionmaker[AsyncSession], payload: dict[str, Any]
    ) -> str:
        event = parse_push(payload)
        if event is None:
            log.info("incremental.branch_deleted", ref=payload.get("ref"))
            return "ignored"
        repo = await self._find_repository(session_factory, event.owner, event.name)
        if repo is None:
            return "ignored"

        result = await self._orchestrator.process_incremental_update(
            repo.id, event.commit_sha, event.changed_files, branch=event.branch
        )
        async with _transaction(session_factory) as session:
            risk = await self._risk_runner.calculate_risk(
                session,
                repo.id,
                result.changed_files,
                result.new_embeddings,
                exclude_shas={event.commit_sha, *result.commit_shas},
            )
        await self._post_status(event, risk)
        return "analyzed"

    async def _handle_pull_request(
        self, session_factory: async_sessionmaker[AsyncSession], payload: dict[str, Any]
    ) -> str:
        event = parse_pull_request(payload)
        repo = await self._find_repository(session_factory, event.owner, event.name)
        if repo is None:
            return "ignored"
        files = None
        if event.is_open and self._hosting is not None:
            files = await self._hosting.list_pull_request_files(
                event.owner, event.name, event.number
            )
        async with _transaction(session_factory) as session:
            await self._pull_request_service.sync(session, repo.id, files=files, **event.fields)
        log.info(
            "incremental.pull_request_synced",
            repository_id=str(repo.id),
            pr_number=event.number,
            action=event.action,
            files=None if files is None else len(files),
        )
        return "pull_request"

    async def _find_repository(
        self, session_factory: async_sessionmaker[AsyncSession], owner: str, name: str
    ) -> Repository | None:
        async with _transaction(session_factory) as session:
            repo = await self._repository_service.get_by_owner_name(session, owner, name)
        if repo is None:
            log.info("incremental.unknown_repository", owner=owner, name=name)
        return repo

    async def _post_status(self, event: PushEvent, risk: RiskAnalysisResult) -> None:
        """Report the push's conflict risk as a commit status."""
        if self._hosting is None:
            return
        blocked = risk.risk_score >= self._config.block_threshold
        description = f"conflict risk {risk.risk_score:.2f}"
        if risk.conflicting_prs and risk.risk_score > 0:
            description += f" (PR #{risk.conflicting_prs[0].pr_number})"
        await self._hosting.post_commit_status(
            event.owner,
            event.name,
            event.commit_sha,
            state="failure" if blocked else "success",
            description=description,
            context=STATUS_CONTEXT,
        )
        log.info(
            "incremental.status_posted",
            sha=event.commit_sha,
            risk_score=round(risk.risk_score, 4),
            blocked=blocked,
        )


@asynccontextmanager
async def _transaction(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        async with session.begin():
            yield session
