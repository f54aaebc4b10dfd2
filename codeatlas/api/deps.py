"""Dependency injection: session, service singletons and the engine runtime."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from codeatlas.core.config import Settings
from codeatlas.dao.branch_dao import BranchDAO
from codeatlas.dao.code_embedding_dao import CodeEmbeddingDAO
from codeatlas.dao.commit_dao import CommitDAO
from codeatlas.dao.dependency_dao import DependencyDAO
from codeatlas.dao.file_ownership_dao import FileOwnershipDAO
from codeatlas.dao.negative_score_dao import NegativeScoreDAO, ReplacementEventDAO
from codeatlas.dao.pull_request_dao import PullRequestDAO
from codeatlas.dao.repository_dao import RepositoryDAO
from codeatlas.dao.repository_file_dao import FileChangeDAO, RepositoryFileDAO
from codeatlas.dao.webhook_queue_dao import WebhookQueueDAO
from codeatlas.engines.embedding.embedding_client import EmbeddingClient
from codeatlas.engines.extraction.parser_client import ParserClient
from codeatlas.engines.hosting.github_client import GitHubClient
from codeatlas.engines.incremental.runner import IncrementalRunner
from codeatlas.engines.ingestion.orchestrator import IngestionOrchestrator
from codeatlas.engines.negative_score.runner import NegativeScoreRunner
from codeatlas.engines.ownership.runner import OwnershipRunner
from codeatlas.engines.risk.runner import RiskRunner
from codeatlas.services.embedding_service import EmbeddingService
from codeatlas.services.history_service import HistoryService
from codeatlas.services.negative_score_service import NegativeScoreService
from codeatlas.services.ownership_service import OwnershipService
from codeatlas.services.pull_request_service import PullRequestService
from codeatlas.services.repository_service import RepositoryService
from codeatlas.services.webhook_queue_service import WebhookQueueService

# ---------------------------------------------------------------------------
# DAO singletons
# ---------------------------------------------------------------------------
_repository_dao = RepositoryDAO()
_branch_dao = BranchDAO()
_commit_dao = CommitDAO()
_file_dao = RepositoryFileDAO()
_file_change_dao = FileChangeDAO()
_embedding_dao = CodeEmbeddingDAO()
_dependency_dao = DependencyDAO()
_ownership_dao = FileOwnershipDAO()
_pull_request_dao = PullRequestDAO()
_negative_score_dao = NegativeScoreDAO()
_replacement_event_dao = ReplacementEventDAO()
_queue_dao = WebhookQueueDAO()

# ---------------------------------------------------------------------------
# Service singletons
# ---------------------------------------------------------------------------
_repository_service = RepositoryService(_repository_dao)
_history_service = HistoryService(_branch_dao, _commit_dao, _file_dao, _file_change_dao)
_embedding_service = EmbeddingService(_embedding_dao, _dependency_dao, _commit_dao)
_ownership_service = OwnershipService(_ownership_dao)
_pull_request_service = PullRequestService(_pull_request_dao)
_negative_score_service = NegativeScoreService(_negative_score_dao, _replacement_event_dao)
_ownership_runner = OwnershipRunner(_embedding_service, _history_service, _ownership_service)

# ---------------------------------------------------------------------------
# Engine / session factory / runners (initialised by init_runtime)
# ---------------------------------------------------------------------------
_settings: Settings | None = None
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None
_queue_service = WebhookQueueService(_queue_dao)
_risk_runner = RiskRunner(_pull_request_service, _embedding_service)
_negative_score_runner = NegativeScoreRunner(
    _repository_service, _embedding_service, _history_service, _negative_score_service
)
_github_client: GitHubClient | None = None
_parser_client: ParserClient | None = None
_embedding_client: EmbeddingClient | None = None
_orchestrator: IngestionOrchestrator | None = None
_incremental_runner: IncrementalRunner | None = None


def init_session_factory(database_url: str | None = None) -> async_sessionmaker[AsyncSession]:
    """Create the async engine and session factory. Called once at startup."""
    global _engine, _session_factory  # noqa: PLW0603
    url = database_url or get_settings().database_url
    _engine = create_async_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_recycle=1800,
    )
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _session_factory


def init_runtime(
    settings: Settings | None = None, *, with_ingestion: bool = True
) -> async_sessionmaker[AsyncSession]:
    """Build the session factory, remote clients and runners from *settings*.

    With ``with_ingestion=False`` only the database-backed runners are built
    (no parser, embedder or GitHub client), which is all score recomputation needs.
    """
    global _settings, _queue_service, _risk_runner, _negative_score_runner  # noqa: PLW0603
    global _github_client, _parser_client, _embedding_client  # noqa: PLW0603
    global _orchestrator, _incremental_runner  # noqa: PLW0603
    _settings = settings or Settings.from_env()
    factory = init_session_factory(_settings.database_url)

    _queue_service = WebhookQueueService(_queue_dao, _settings.queue)
    _risk_runner = RiskRunner(_pull_request_service, _embedding_service, _settings.analysis)
    _negative_score_runner = NegativeScoreRunner(
        _repository_service,
        _embedding_service,
        _history_service,
        _negative_score_service,
        _settings.analysis,
    )
    if not with_ingestion:
        return factory

    _github_client = GitHubClient(token=_settings.github_token)
    _parser_client = ParserClient(_settings.parser_url, timeout=_settings.remote.timeout)
    _embedding_client = EmbeddingClient(
        _settings.embedding_api_key,
        dimension=_settings.embedding_dim,
        timeout=_settings.remote.timeout,
    )
    _orchestrator = IngestionOrchestrator(
        factory,
        _repository_service,
        _history_service,
        _embedding_service,
        _ownership_runner,
        _parser_client,
        _embedding_client,
        clone_base_path=_settings.clone_base_path,
        remote=_settings.remote,
        hosting=_github_client,
        pull_request_service=_pull_request_service,
        webhook_url=_settings.webhook_url,
        webhook_secret=_settings.webhook_secret,
    )
    _incremental_runner = IncrementalRunner(
        _queue_service,
        _repository_service,
        _pull_request_service,
        _orchestrator,
        _risk_runner,
        hosting=_github_client,
        config=_settings.analysis,
    )
    return factory


async def dispose_runtime() -> None:
    """Close remote clients and dispose the async engine."""
    global _engine, _github_client, _parser_client, _embedding_client  # noqa: PLW0603
    for client in (_github_client, _parser_client, _embedding_client):
        if client is not None:
            await client.close()
    _github_client = _parser_client = _embedding_client = None
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def set_session_factory(factory: async_sessionmaker[AsyncSession]) -> None:
    """Override session factory (for testing)."""
    global _session_factory  # noqa: PLW0603
    _session_factory = factory


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("call init_runtime() before handling requests")
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a per-request session with automatic commit/rollback."""
    async with get_session_factory()() as session:
        async with session.begin():
            yield session


# ---------------------------------------------------------------------------
# Getters (for Depends())
# ---------------------------------------------------------------------------


def get_settings() -> Settings:
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def get_repository_service() -> RepositoryService:
    return _repository_service


def get_history_service() -> HistoryService:
    return _history_service


def get_embedding_service() -> EmbeddingService:
    return _embedding_service


def get_ownership_service() -> OwnershipService:
    return _ownership_service


def get_negative_score_service() -> NegativeScoreService:
    return _negative_score_service


def get_queue_service() -> WebhookQueueService:
    return _queue_service


def get_risk_runner() -> RiskRunner:
    return _risk_runner


def get_negative_score_runner() -> NegativeScoreRunner:
    return _negative_score_runner


def get_orchestrator() -> IngestionOrchestrator:
    if _orchestrator is None:
        raise RuntimeError("call init_runtime() before handling requests")
    return _orchestrator


def get_incremental_runner() -> IncrementalRunner:
    if _incremental_runner is None:
        raise RuntimeError("call init_runtime() before handling requests")
    return _incremental_runner
