"""Repositories router: registration, status and the analytics read side."""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.api.deps import (
    get_embedding_service,
    get_history_service,
    get_negative_score_runner,
    get_negative_score_service,
    get_orchestrator,
    get_ownership_service,
    get_repository_service,
    get_risk_runner,
    get_session,
)
from codeatlas.api.schemas.analysis import (
    FileOwnershipResponse,
    NegativeScoreResponse,
    OwnershipEntry,
    PrConflictResponse,
    PrRiskResponse,
    RecomputeResponse,
    ReplacementEventResponse,
    RiskRequest,
    RiskResponse,
    SimilarFile,
)
from codeatlas.api.schemas.common import PageMeta, PaginatedResponse
from codeatlas.api.schemas.repository import (
    RegisterRepositoryRequest,
    RepositoryDetail,
    RepositoryResponse,
)
from codeatlas.engines.ingestion.orchestrator import IngestionOrchestrator
from codeatlas.engines.ingestion.state import IN_FLIGHT, RepositoryStatus
from codeatlas.engines.negative_score.runner import NegativeScoreRunner
from codeatlas.engines.risk.runner import RiskRunner
from codeatlas.services.embedding_service import EmbeddingService
from codeatlas.services.history_service import HistoryService
from codeatlas.services.negative_score_service import NegativeScoreService
from codeatlas.services.ownership_service import OwnershipService
from codeatlas.services.repository_service import RepositoryService

log = structlog.get_logger("codeatlas.api")

router = APIRouter()


@router.post("/", response_model=RepositoryResponse, status_code=202)
async def register_repository(
    body: RegisterRepositoryRequest,
    background: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    svc: RepositoryService = Depends(get_repository_service),
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> RepositoryResponse:
    """Register ``owner/name`` and start a full analysis in the background."""
    owner, name = body.resolved()
    repo, created = await svc.register(session, owner=owner, name=name, user_id=body.user_id)
    # background tasks run after the request transaction has committed
    if RepositoryStatus(repo.status) in IN_FLIGHT or orchestrator.is_running(repo.id):
        log.info("repository.already_running", repository_id=str(repo.id))
    else:
        background.add_task(_start_analysis, orchestrator, repo.owner, repo.name, repo.id)
    log.info("repository.analysis_requested", repository_id=str(repo.id), created=created)
    return RepositoryResponse.model_validate(repo)


async def _start_analysis(
    orchestrator: IngestionOrchestrator, owner: str, name: str, repository_id: uuid.UUID
) -> None:
    orchestrator.schedule_analysis(owner, name, repository_id)


@router.get("/", response_model=PaginatedResponse[RepositoryResponse])
async def list_repositories(
    cursor: str | None = Query(None),
    page_size: int = Query(20, ge=1, le=100),
    status: str | None = Query(None),
    session: AsyncSession = Depends(get_session),
    svc: RepositoryService = Depends(get_repository_service),
) -> PaginatedResponse[RepositoryResponse]:
    result = await svc.list_repositories(session, cursor=cursor, page_size=page_size, status=status)
    return PaginatedResponse(
        data=[RepositoryResponse.model_validate(r) for r in result["data"]],
        meta=PageMeta(next_cursor=result["next_cursor"], has_more=result["has_more"]),
    )


@router.get("/{repository_id}", response_model=RepositoryDetail)
async def get_repository(
    repository_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    svc: RepositoryService = Depends(get_repository_service),
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> RepositoryDetail:
    repo = await svc.get(session, repository_id)
    detail = RepositoryDetail.model_validate(repo)
    detail.running = orchestrator.is_running(repo.id)
    return detail


@router.post("/{repository_id}/cancel", status_code=202)
async def cancel_analysis(
    repository_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    svc: RepositoryService = Depends(get_repository_service),
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> dict[str, bool]:
    await svc.get(session, repository_id)
    return {"cancelled": orchestrator.cancel(repository_id)}


@router.get(
    "/{repository_id}/files/{file_id}/ownership", response_model=FileOwnershipResponse
)
async def get_file_ownership(
    repository_id: uuid.UUID,
    file_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    history: HistoryService = Depends(get_history_service),
    ownership: OwnershipService = Depends(get_ownership_service),
) -> FileOwnershipResponse:
    repo_file = await history.get_file(session, repository_id, file_id)
    rows = await ownership.list_by_file(session, file_id)
    return FileOwnershipResponse(
        file_id=file_id,
        file_path=repo_file.file_path,
        owners=[OwnershipEntry.model_validate(r) for r in rows],
    )


@router.get("/{repository_id}/files/{file_id}/similar", response_model=list[SimilarFile])
async def get_similar_files(
    repository_id: uuid.UUID,
    file_id: uuid.UUID,
    limit: int = Query(10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    history: HistoryService = Depends(get_history_service),
    embeddings: EmbeddingService = Depends(get_embedding_service),
) -> list[SimilarFile]:
    repo_file = await history.get_file(session, repository_id, file_id)
    matches = await embeddings.similar_files(
        session, repository_id, repo_file.file_path, file_id, limit=limit
    )
    return [
        SimilarFile(file_id=fid, file_path=path, similarity=score)
        for fid, path, score in matches
    ]


@router.post("/{repository_id}/risk", response_model=RiskResponse)
async def assess_risk(
    repository_id: uuid.UUID,
    body: RiskRequest,
    session: AsyncSession = Depends(get_session),
    svc: RepositoryService = Depends(get_repository_service),
    embeddings: EmbeddingService = Depends(get_embedding_service),
    risk_runner: RiskRunner = Depends(get_risk_runner),
) -> RiskResponse:
    """Score a prospective change against the open pull requests."""
    await svc.get(session, repository_id)
    vectors = body.embeddings
    if vectors is None:
        vectors = await embeddings.vectors_at_revision(
            session, repository_id, body.commit_sha, body.changed_files
        )
    result = await risk_runner.preview_risk(
        session,
        repository_id,
        body.changed_files,
        vectors,
        exclude_shas=[body.commit_sha] if body.commit_sha else (),
    )
    return RiskResponse(
        risk_score=result.risk_score,
        structural_overlap=result.structural_overlap,
        semantic_overlap=result.semantic_overlap,
        blocked=result.risk_score >= risk_runner.config.block_threshold,
        conflicting_prs=[PrRiskResponse(**vars(r)) for r in result.conflicting_prs],
        conflicts=[PrConflictResponse(**vars(c)) for c in result.conflicts],
    )


@router.get("/{repository_id}/negative-scores", response_model=list[NegativeScoreResponse])
async def list_negative_scores(
    repository_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    svc: RepositoryService = Depends(get_repository_service),
    scores: NegativeScoreService = Depends(get_negative_score_service),
) -> list[NegativeScoreResponse]:
    await svc.get(session, repository_id)
    rows = await scores.list_scores(session, repository_id)
    return [NegativeScoreResponse.model_validate(r) for r in rows]


@router.post("/{repository_id}/negative-scores/recompute", response_model=RecomputeResponse)
async def recompute_negative_scores(
    repository_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    runner: NegativeScoreRunner = Depends(get_negative_score_runner),
) -> RecomputeResponse:
    results = await runner.calculate_negative_scores_for_repository(session, repository_id)
    return RecomputeResponse(repository_id=repository_id, contributors=len(results))


@router.get(
    "/{repository_id}/replacement-events",
    response_model=PaginatedResponse[ReplacementEventResponse],
)
async def list_replacement_events(
    repository_id: uuid.UUID,
    cursor: str | None = Query(None),
    page_size: int = Query(20, ge=1, le=100),
    contributor: str | None = Query(None),
    session: AsyncSession = Depends(get_session),
    svc: RepositoryService = Depends(get_repository_service),
    scores: NegativeScoreService = Depends(get_negative_score_service),
) -> PaginatedResponse[ReplacementEventResponse]:
    await svc.get(session, repository_id)
    result = await scores.list_events(
        session, repository_id, cursor=cursor, page_size=page_size, contributor=contributor
    )
    return PaginatedResponse(
        data=[ReplacementEventResponse.model_validate(e) for e in result["data"]],
        meta=PageMeta(next_cursor=result["next_cursor"], has_more=result["has_more"]),
    )
