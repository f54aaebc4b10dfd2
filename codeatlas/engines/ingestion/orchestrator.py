"""IngestionOrchestrator: drive a repository from clone to semantic ownership.

A full run walks the states ``cloning → walking → extracting → embedding →
computing_ownership → completed``; an incremental run re-enters at ``walking``
from ``completed`` and touches only the files a push changed.  Every transition
is a conditional update committed on its own, so a crashed run leaves the row
in the stage it died in and :meth:`IngestionOrchestrator.recover_interrupted`
can fail it at the next start.

Remote calls (parser, embedder) are bounded and retried by
:class:`~codeatlas.engines.ingestion.retry.RemoteCaller`; a unit that still
fails is recorded as a :class:`UnitFailure` and skipped.  Clone failures and
database errors abort the run.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Coroutine, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TypeVar, cast

import httpx
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codeatlas.core.config import RemoteCallConfig
from codeatlas.core.logging import bound_repository
from codeatlas.engines.embedding.embedding_client import EmbeddingClient
from codeatlas.engines.extraction.languages import language_for_path, resolve_import
from codeatlas.engines.extraction.models import FunctionUnit
from codeatlas.engines.extraction.parser_client import ParserClient
from codeatlas.engines.extraction.units import assign_unit_names, normalize_code, whole_file_unit
from codeatlas.engines.git_reader.graph import assign_generations, outside_parents
from codeatlas.engines.git_reader.models import CommitInfo
from codeatlas.engines.git_reader.reader import GitError, GitHistoryReader
from codeatlas.engines.hosting.github_client import (
    GitHubClient,
    RateLimitError,
    pull_request_fields,
)
from codeatlas.engines.ingestion.errors import (
    CloneError,
    PersistenceError,
    PipelineCancelledError,
    UnitFailure,
    describe_error,
)
from codeatlas.engines.ingestion.models import (
    AnalysisResult,
    ExtractedFile,
    IncrementalResult,
    WorkUnit,
)
from codeatlas.engines.ingestion.retry import RETRYABLE_ERRORS, RemoteCaller
from codeatlas.engines.ingestion.state import RepositoryStatus
from codeatlas.engines.ownership.runner import OwnershipRunner
from codeatlas.services import ServiceError
from codeatlas.services.embedding_service import EmbeddingService
from codeatlas.services.history_service import HistoryService
from codeatlas.services.pull_request_service import PullRequestService
from codeatlas.services.repository_service import RepositoryService

log = structlog.get_logger("codeatlas.engine")

T = TypeVar("T")

_S = RepositoryStatus

# concurrent git subprocesses (diff-tree, cat-file) per orchestrator
_GIT_CONCURRENCY = 8

# above this many commits the embedded-pair lookup scans the whole repository
_IN_CLAUSE_LIMIT = 1000

# a unit whose remote call still fails after retries is skipped, not fatal
_UNIT_ERRORS: tuple[type[BaseException], ...] = (*RETRYABLE_ERRORS, ValueError)

_HOSTING_ERRORS: tuple[type[BaseException], ...] = (httpx.HTTPError, RateLimitError)


@dataclass
class _Run:
    """Mutable bookkeeping of one pipeline run."""

    repository_id: uuid.UUID
    owner: str
    name: str
    clone_url: str
    reader: GitHistoryReader
    status: RepositoryStatus
    result: AnalysisResult
    default_branch: str | None = None
    head_sha: str | None = None

    def fail_unit(self, stage: str, error: BaseException, **where: str | None) -> None:
        failure = UnitFailure(stage=stage, error=describe_error(error), **where)
        self.result.failed_units.append(failure)
        log.warning("ingestion.unit_failed", stage=stage, error=failure.error, **where)


async def _gather_all(coros: Iterable[Coroutine[Any, Any, T]]) -> list[T]:
    """``asyncio.gather`` that cancels the siblings when one of them raises."""
    tasks = [asyncio.ensure_future(c) for c in coros]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class IngestionOrchestrator:
    """Run full and incremental analyses; at most one run per repository at a time.

    The per-repository lock is the status row itself: a run only starts after
    the conditional ``pending → cloning`` (or ``completed → walking``) update
    succeeded.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        repository_service: RepositoryService,
        history_service: HistoryService,
        embedding_service: EmbeddingService,
        ownership_runner: OwnershipRunner,
        parser: ParserClient,
        embedder: EmbeddingClient,
        *,
        clone_base_path: Path,
        remote: RemoteCallConfig | None = None,
        hosting: GitHubClient | None = None,
        pull_request_service: PullRequestService | None = None,
        webhook_url: str | None = None,
        webhook_secret: str = "",
        reader_factory: Callable[[Path], GitHistoryReader] = GitHistoryReader,
    ) -> None:
        self._session_factory = session_factory
        self._repository_service = repository_service
        self._history_service = history_service
        self._embedding_service = embedding_service
        self._ownership_runner = ownership_runner
        self._parser = parser
        self._embedder = embedder
        self._clone_base_path = Path(clone_base_path)
        self._remote = RemoteCaller(remote)
        self._hosting = hosting
        self._pull_request_service = pull_request_service
        self._webhook_url = webhook_url
        self._webhook_secret = webhook_secret
        self._reader_factory = reader_factory
        self._git_sem = asyncio.Semaphore(_GIT_CONCURRENCY)
        self._active: dict[uuid.UUID, asyncio.Task[Any]] = {}
        self._background: set[asyncio.Task[Any]] = set()

    # ── public API ────────────────────────────────────────────────────────

    async def analyze_repository(
        self,
        owner: str,
        repo_name: str,
        repository_id: uuid.UUID | None = None,
        user_id: uuid.UUID | None = None,
    ) -> AnalysisResult:
        """Full analysis of ``owner/repo_name``, registering it when *repository_id* is None.

        Raises :class:`RepositoryBusyError` when another run holds the
        repository, :class:`CloneError` / :class:`PersistenceError` when the
        run aborts and :class:`PipelineCancelledError` after :meth:`cancel`.
        """
        async with self._transaction() as session:
            if repository_id is None:
                repo, _ = await self._repository_service.register(
                    session, owner=owner, name=repo_name, user_id=user_id
                )
            else:
                repo = await self._repository_service.get(session, repository_id)
            repository_id = repo.id
            clone_url = repo.clone_url

        async with self._transaction() as session:
            await self._repository_service.claim_full_run(session, repository_id)

        run = _Run(
            repository_id=repository_id,
            owner=owner,
            name=repo_name,
            clone_url=clone_url,
            reader=self._reader_factory(self.clone_path(owner, repo_name)),
            status=_S.CLONING,
            result=AnalysisResult(repository_id=repository_id, status=_S.CLONING.value),
        )
        return await self._supervise(run, self._full_run(run))

    async def process_incremental_update(
        self,
        repository_id: uuid.UUID,
        commit_sha: str,
        changed_files: Iterable[str],
        branch: str | None = None,
    ) -> IncrementalResult:
        """Ingest the commits up to *commit_sha*, restricted to *changed_files*.

        Running it twice with the same arguments writes nothing the second
        time; the returned ``new_embeddings`` are the same both times.
        """
        async with self._transaction() as session:
            repo = await self._repository_service.get(session, repository_id)
            base_sha = repo.last_analyzed_commit
            await self._repository_service.claim_incremental_run(session, repository_id)

        paths = sorted(set(changed_files))
        run = _Run(
            repository_id=repository_id,
            owner=repo.owner,
            name=repo.name,
            clone_url=repo.clone_url,
            reader=self._reader_factory(self.clone_path(repo.owner, repo.name)),
            status=_S.WALKING,
            result=IncrementalResult(
                repository_id=repository_id,
                status=_S.WALKING.value,
                commit_sha=commit_sha,
                changed_files=paths,
            ),
            default_branch=repo.default_branch,
        )
        result = await self._supervise(
            run, self._incremental_run(run, base_sha, commit_sha, paths, branch)
        )
        return cast(IncrementalResult, result)

    def schedule_analysis(
        self, owner: str, repo_name: str, repository_id: uuid.UUID
    ) -> asyncio.Task[AnalysisResult]:
        """Start :meth:`analyze_repository` in the background; the outcome is logged."""
        task = asyncio.create_task(
            self.analyze_repository(owner, repo_name, repository_id=repository_id),
            name=f"analyze-{owner}/{repo_name}",
        )
        self._background.add(task)
        task.add_done_callback(self._background_done)
        return task

    def cancel(self, repository_id: uuid.UUID) -> bool:
        """Cancel the active run of the repository; False when none is running."""
        task = self._active.get(repository_id)
        if task is None or task.done():
            return False
        task.cancel()
        log.info("ingestion.cancel_requested", repository_id=str(repository_id))
        return True

    def is_running(self, repository_id: uuid.UUID) -> bool:
        task = self._active.get(repository_id)
        return task is not None and not task.done()

    async def recover_interrupted(self) -> list[uuid.UUID]:
        """Fail every repository a dead process left mid-run."""
        async with self._transaction() as session:
            return await self._repository_service.recover_interrupted(session)

    async def sync_pull_requests(self, repository_id: uuid.UUID, owner: str, name: str) -> int:
        """Mirror the open pull requests of ``owner/name`` and their changed files."""
        if self._hosting is None or self._pull_request_service is None:
            return 0
        synced = []
        for pr in await self._hosting.list_open_pull_requests(owner, name):
            fields = pull_request_fields(pr)
            files = await self._hosting.list_pull_request_files(owner, name, fields["pr_number"])
            synced.append((fields, files))
        async with self._transaction() as session:
            for fields, files in synced:
                await self._pull_request_service.sync(
                    session, repository_id, files=files, **fields
                )
            await self._pull_request_service.close_missing(
                session, repository_id, [fields["pr_number"] for fields, _ in synced]
            )
        log.info("ingestion.pull_requests_synced", count=len(synced))
        return len(synced)

    def clone_path(self, owner: str, name: str) -> Path:
        return self._clone_base_path / owner / f"{name}.git"

    # ── pipelines ─────────────────────────────────────────────────────────

    async def _full_run(self, run: _Run) -> AnalysisResult:
        await self._materialize(run)

        await self._advance(run, _S.WALKING)
        units = await self._walk_all_branches(run)

        await self._advance(run, _S.EXTRACTING)
        extracted, missing = await self._extract(run, units)
        await self._rebuild_dependencies(run, units, extracted, missing)

        await self._advance(run, _S.EMBEDDING)
        await self._embed(run, extracted)

        await self._advance(run, _S.COMPUTING_OWNERSHIP)
        async with self._transaction() as session:
            file_ids = await self._history_service.touched_file_ids(session, run.repository_id)
        await self._compute_ownership(run, file_ids)

        await self._sync_hosting(run)
        await self._finish(run, last_analyzed_commit=run.head_sha)
        return run.result

    async def _incremental_run(
        self,
        run: _Run,
        base_sha: str | None,
        commit_sha: str,
        paths: list[str],
        branch: str | None,
    ) -> IncrementalResult:
        await self._materialize(run)
        commits = await self._git(run.reader.commits_between(base_sha, commit_sha))
        cast(IncrementalResult, run.result).commit_shas = [c.sha for c in commits]
        commit_ids, units = await self._record_commits(run, commits, set(paths))
        if branch:
            async with self._transaction() as session:
                branch_id = await self._history_service.save_branch(
                    session,
                    run.repository_id,
                    branch,
                    commit_sha,
                    branch == run.default_branch,
                )
                await self._history_service.link_commits(session, branch_id, commit_ids)

        await self._advance(run, _S.EXTRACTING)
        extracted, missing = await self._extract(run, units)
        await self._rebuild_dependencies(run, units, extracted, missing)

        await self._advance(run, _S.EMBEDDING)
        await self._embed(run, extracted)

        await self._advance(run, _S.COMPUTING_OWNERSHIP)
        await self._compute_ownership(run, sorted({u.file_id for u in units}))

        result = cast(IncrementalResult, run.result)
        async with self._transaction() as session:
            result.new_embeddings = await self._embedding_service.vectors_at_revision(
                session, run.repository_id, commit_sha, paths
            )
        await self._finish(run, last_analyzed_commit=commit_sha)
        return result

    # ── stages ────────────────────────────────────────────────────────────

    async def _materialize(self, run: _Run) -> None:
        try:
            await run.reader.materialize(run.clone_url)
        except GitError as exc:
            raise CloneError(str(exc)) from exc

    async def _walk_all_branches(self, run: _Run) -> list[WorkUnit]:
        """Persist branches, commits and file changes; return every (commit, file) pair."""
        branches = await self._git(run.reader.list_branches())
        if branches:
            run.default_branch = await self._git(run.reader.default_branch())
        known: dict[str, uuid.UUID] = {}
        units: list[WorkUnit] = []

        for branch in branches:
            commits = await self._git(run.reader.list_commits(branch.name))
            fresh = [c for c in commits if c.sha not in known]
            commit_ids, branch_units = await self._record_commits(run, fresh, None)
            known.update(zip((c.sha for c in fresh), commit_ids))
            units.extend(branch_units)
            async with self._transaction() as session:
                branch_id = await self._history_service.save_branch(
                    session,
                    run.repository_id,
                    branch.name,
                    branch.head_sha,
                    branch.name == run.default_branch,
                )
                await self._history_service.link_commits(
                    session, branch_id, [known[c.sha] for c in commits]
                )
            if branch.name == run.default_branch:
                run.head_sha = branch.head_sha

        async with self._transaction() as session:
            pruned = await self._history_service.prune_branches(
                session, run.repository_id, [b.name for b in branches]
            )
        log.info(
            "ingestion.walked",
            branches=len(branches),
            pruned=pruned,
            commits=run.result.commits_walked,
            file_changes=run.result.file_changes,
            work_units=len(units),
        )
        return units

    async def _record_commits(
        self, run: _Run, commits: list[CommitInfo], paths: set[str] | None
    ) -> tuple[list[uuid.UUID], list[WorkUnit]]:
        """Persist *commits* (newest first) and their file changes, limited to *paths*."""
        async with self._transaction() as session:
            existing = await self._history_service.existing_shas(
                session, run.repository_id, [c.sha for c in commits]
            )
            known = await self._history_service.commit_generations(
                session, run.repository_id, outside_parents(commits)
            )
        commits = assign_generations(commits, known)
        run.result.commits_walked += sum(1 for c in commits if c.sha not in existing)
        recorded = await _gather_all(self._record_commit(run, c, paths) for c in commits)
        commit_ids = [commit_id for commit_id, _ in recorded]
        units = [unit for _, commit_units in recorded for unit in commit_units]
        return commit_ids, units

    async def _record_commit(
        self, run: _Run, commit: CommitInfo, paths: set[str] | None
    ) -> tuple[uuid.UUID, list[WorkUnit]]:
        async with self._git_sem:
            changed = await self._git(run.reader.changed_files(commit))
            if paths is not None:
                changed = [c for c in changed if c.path in paths]
            async with self._transaction() as session:
                commit_id = await self._history_service.save_commit(
                    session,
                    run.repository_id,
                    sha=commit.sha,
                    author_name=commit.author_name,
                    author_email=commit.author_email,
                    message=commit.message,
                    committed_at=commit.committed_at,
                    generation=commit.generation,
                )
                units = []
                for change in changed:
                    language = language_for_path(change.path)
                    file_id = await self._history_service.save_file(
                        session, run.repository_id, change.path, language
                    )
                    written = await self._history_service.record_file_change(
                        session,
                        commit_id=commit_id,
                        file_id=file_id,
                        additions=change.additions,
                        deletions=change.deletions,
                        author_name=commit.author_name,
                    )
                    if written:
                        run.result.file_changes += 1
                    units.append(WorkUnit(commit, commit_id, change.path, file_id, language))
        return commit_id, units

    async def _extract(
        self, run: _Run, units: list[WorkUnit]
    ) -> tuple[list[ExtractedFile], list[WorkUnit]]:
        """Parse every supported, not yet embedded unit.

        Returns the parsed files and the units whose path no longer exists at
        their revision (deleted or binary).
        """
        commit_ids = {u.commit_id for u in units}
        async with self._transaction() as session:
            done = await self._embedding_service.embedded_pairs(
                session,
                run.repository_id,
                commit_ids if len(commit_ids) <= _IN_CLAUSE_LIMIT else None,
            )
        pending = [u for u in units if u.language and (u.file_id, u.commit_id) not in done]

        async def extract_one(unit: WorkUnit) -> ExtractedFile | WorkUnit | None:
            async with self._git_sem:
                content = await self._git(run.reader.file_content(unit.commit.sha, unit.file_path))
            if content is None:
                return unit
            try:
                parsed = await self._remote.call(
                    lambda: self._parser.parse(content, unit.language or ""), label="parse"
                )
            except _UNIT_ERRORS as exc:
                run.fail_unit(
                    "extracting", exc, commit_sha=unit.commit.sha, file_path=unit.file_path
                )
                return None
            return ExtractedFile(unit=unit, content=content, parsed=parsed)

        outcomes = await _gather_all(extract_one(u) for u in pending)
        extracted = [o for o in outcomes if isinstance(o, ExtractedFile)]
        missing = [o for o in outcomes if isinstance(o, WorkUnit)]
        run.result.files_extracted += len(extracted)
        log.info(
            "ingestion.extracted",
            pending=len(pending),
            skipped=len(units) - len(pending),
            extracted=len(extracted),
            missing=len(missing),
        )
        return extracted, missing

    async def _rebuild_dependencies(
        self,
        run: _Run,
        units: list[WorkUnit],
        extracted: list[ExtractedFile],
        missing: list[WorkUnit],
    ) -> None:
        """Replace the import edges of every file whose newest revision was just parsed."""
        newest: dict[str, WorkUnit] = {}
        for unit in units:
            current = newest.get(unit.file_path)
            key = (unit.commit.committed_at, unit.commit.generation, unit.commit.sha)
            if current is None or key > (
                current.commit.committed_at,
                current.commit.generation,
                current.commit.sha,
            ):
                newest[unit.file_path] = unit
        parsed = {(e.unit.file_id, e.unit.commit_id): e for e in extracted}
        deleted = {(u.file_id, u.commit_id) for u in missing}

        edges = 0
        async with self._transaction() as session:
            index = await self._history_service.path_index(session, run.repository_id)
            for path, unit in newest.items():
                key = (unit.file_id, unit.commit_id)
                if key in deleted:
                    await self._embedding_service.replace_dependencies(session, unit.file_id, [])
                    continue
                item = parsed.get(key)
                if item is None:
                    continue
                targets: set[uuid.UUID] = set()
                for module in item.parsed.imports:
                    for target in resolve_import(path, module, index):
                        if target != path:
                            targets.add(index[target])
                edges += await self._embedding_service.replace_dependencies(
                    session, unit.file_id, sorted(targets)
                )
                await self._history_service.save_file(
                    session,
                    run.repository_id,
                    path,
                    unit.language,
                    total_lines=len(item.content.splitlines()),
                )
        log.info("ingestion.dependencies", files=len(newest), edges=edges)

    async def _embed(self, run: _Run, extracted: list[ExtractedFile]) -> None:
        async def embed_unit(
            item: ExtractedFile, unit_name: str, fn: FunctionUnit
        ) -> dict[str, Any] | None:
            text = normalize_code(fn.code)
            if not text:
                return None
            try:
                vector = await self._remote.call(lambda: self._embedder.embed(text), label="embed")
            except _UNIT_ERRORS as exc:
                run.fail_unit(
                    "embedding",
                    exc,
                    commit_sha=item.unit.commit.sha,
                    file_path=item.unit.file_path,
                    unit=unit_name,
                )
                return None
            return {
                "file_id": item.unit.file_id,
                "commit_id": item.unit.commit_id,
                "unit_name": unit_name,
                "start_line": fn.start_line,
                "end_line": fn.end_line,
                "embedding": vector,
            }

        async def embed_file(item: ExtractedFile) -> None:
            if item.parsed.functions:
                named = assign_unit_names(item.parsed.functions)
            else:
                named = [whole_file_unit(item.content)]
            rows = await _gather_all(embed_unit(item, name, fn) for name, fn in named)
            rows = [r for r in rows if r is not None]
            if not rows:
                return
            async with self._transaction() as session:
                run.result.embeddings_stored += await self._embedding_service.store(session, rows)

        await _gather_all(embed_file(item) for item in extracted)
        log.info("ingestion.embedded", files=len(extracted), stored=run.result.embeddings_stored)

    async def _compute_ownership(self, run: _Run, file_ids: list[uuid.UUID]) -> None:
        run.result.ownership_files = await self._ownership_runner.run_for_files(
            self._session_factory, run.repository_id, file_ids
        )

    async def _sync_hosting(self, run: _Run) -> None:
        """Register the webhook and mirror open PRs; failures are recorded, not raised."""
        if self._hosting is None:
            return
        if self._webhook_url:
            try:
                await self._hosting.register_webhook(
                    run.owner, run.name, self._webhook_url, self._webhook_secret
                )
            except _HOSTING_ERRORS as exc:
                run.fail_unit("webhook", exc)
        try:
            await self.sync_pull_requests(run.repository_id, run.owner, run.name)
        except _HOSTING_ERRORS as exc:
            run.fail_unit("pull_requests", exc)

    async def _finish(self, run: _Run, *, last_analyzed_commit: str | None) -> None:
        async with self._transaction() as session:
            await self._repository_service.record_run(
                session,
                run.repository_id,
                failed_units=[f.to_dict() for f in run.result.failed_units],
                refreshed_at=datetime.now(timezone.utc),
                last_analyzed_commit=last_analyzed_commit,
                clone_path=str(run.reader.path),
                default_branch=run.default_branch,
            )
            await self._repository_service.transition(
                session, run.repository_id, expected=run.status, target=_S.COMPLETED
            )
        run.status = _S.COMPLETED
        run.result.status = _S.COMPLETED.value
        log.info(
            "ingestion.completed",
            commits=run.result.commits_walked,
            embeddings=run.result.embeddings_stored,
            ownership_files=run.result.ownership_files,
            failed_units=len(run.result.failed_units),
        )

    # ── run lifecycle ─────────────────────────────────────────────────────

    async def _supervise(
        self, run: _Run, pipeline: Coroutine[Any, Any, AnalysisResult]
    ) -> AnalysisResult:
        """Run *pipeline* as a cancellable task registered under the repository id."""
        with bound_repository(run.repository_id, repo=f"{run.owner}/{run.name}"):
            task = asyncio.create_task(self._guarded(run, pipeline))
        self._active[run.repository_id] = task
        try:
            return await task
        finally:
            self._active.pop(run.repository_id, None)

    async def _guarded(
        self, run: _Run, pipeline: Coroutine[Any, Any, AnalysisResult]
    ) -> AnalysisResult:
        try:
            return await pipeline
        except asyncio.CancelledError:
            await self._fail(run, "cancelled")
            raise PipelineCancelledError(
                f"analysis of {run.owner}/{run.name} was cancelled"
            ) from None
        except CloneError as exc:
            await self._fail(run, f"clone failed: {exc}")
            raise
        except SQLAlchemyError as exc:
            await self._fail(run, f"persistence error: {type(exc).__name__}")
            raise PersistenceError(str(exc)) from exc
        except Exception as exc:
            await self._fail(run, describe_error(exc))
            raise

    async def _advance(self, run: _Run, target: RepositoryStatus) -> None:
        async with self._transaction() as session:
            await self._repository_service.transition(
                session, run.repository_id, expected=run.status, target=target
            )
        log.info("ingestion.stage", stage=target.value, previous=run.status.value)
        run.status = target
        run.result.status = target.value

    async def _fail(self, run: _Run, reason: str) -> None:
        run.result.status = _S.FAILED.value
        try:
            async with self._transaction() as session:
                await self._repository_service.record_run(
                    session,
                    run.repository_id,
                    failed_units=[f.to_dict() for f in run.result.failed_units],
                )
                await self._repository_service.mark_failed(
                    session, run.repository_id, current=run.status, reason=reason
                )
        except (SQLAlchemyError, ServiceError):
            log.error("ingestion.fail_not_recorded", reason=reason, exc_info=True)
        log.error("ingestion.failed", stage=run.status.value, reason=reason)
        run.status = _S.FAILED

    def _background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                "ingestion.background_failed", task=task.get_name(), error=describe_error(exc)
            )

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    @staticmethod
    async def _git(call: Awaitable[T]) -> T:
        """Await a reader call, surfacing git failures as clone errors."""
        try:
            return await call
        except GitError as exc:
            raise CloneError(str(exc)) from exc
