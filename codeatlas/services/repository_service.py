"""RepositoryService: registration and lifecycle of analyzed repositories."""

import uuid
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.core.github import clone_url_for
from codeatlas.dao.repository_dao import RepositoryDAO
from codeatlas.engines.ingestion.state import IN_FLIGHT, RepositoryStatus, check_transition
from codeatlas.models.repository import Repository
from codeatlas.services import NotFoundError, RepositoryBusyError

log = structlog.get_logger("codeatlas.service")


class RepositoryService:
    """Stateless service for repository CRUD and status transitions."""

    def __init__(self, repository_dao: RepositoryDAO) -> None:
        self._repository_dao = repository_dao

    async def get(self, session: AsyncSession, repository_id: uuid.UUID) -> Repository:
        """Return repository by ID.

        Raises :class:`NotFoundError` if not found.
        """
        repo = await self._repository_dao.get_by_id(session, repository_id)
        if repo is None:
            raise NotFoundError("repository not found")
        return repo

    async def get_by_owner_name(
        self, session: AsyncSession, owner: str, name: str
    ) -> Repository | None:
        return await self._repository_dao.get_by_owner_name(session, owner, name)

    async def list_repositories(
        self,
        session: AsyncSession,
        cursor: str | None = None,
        page_size: int = 20,
        status: str | None = None,
    ) -> dict:
        page = await self._repository_dao.list_paginated(session, cursor, page_size, status)
        return {"data": page.data, "next_cursor": page.next_cursor, "has_more": page.has_more}

    async def register(
        self,
        session: AsyncSession,
        *,
        owner: str,
        name: str,
        user_id: uuid.UUID | None = None,
        clone_url: str | None = None,
    ) -> tuple[Repository, bool]:
        """Return ``(repository, created)``; registering twice yields the same row."""
        existing = await self._repository_dao.get_by_owner_name(session, owner, name)
        if existing is not None:
            return existing, False
        repo = await self._repository_dao.create(
            session,
            owner=owner,
            name=name,
            clone_url=clone_url or clone_url_for(owner, name),
            connected_by_user_id=user_id,
        )
        log.info("repository.registered", repository_id=str(repo.id), owner=owner, name=name)
        return repo, True

    # ── lifecycle ─────────────────────────────────────────────────────────

    async def transition(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        *,
        expected: str,
        target: str,
        reason: str | None = None,
    ) -> None:
        """Conditionally move the repository from *expected* to *target*.

        Raises :class:`InvalidTransitionError` for a move outside the table and
        :class:`RepositoryBusyError` when the row is no longer in *expected*.
        """
        expected = RepositoryStatus(expected).value
        target = RepositoryStatus(target).value
        check_transition(expected, target)
        moved = await self._repository_dao.transition(
            session, repository_id, expected=expected, target=target, reason=reason
        )
        if not moved:
            raise RepositoryBusyError(
                f"repository {repository_id} is not in state {expected!r}"
            )

    async def claim_full_run(self, session: AsyncSession, repository_id: uuid.UUID) -> None:
        """Reset a finished repository to ``pending`` and take the run lock (``cloning``)."""
        repo = await self.get(session, repository_id)
        if repo.status in (RepositoryStatus.FAILED, RepositoryStatus.COMPLETED):
            await self.transition(
                session, repository_id, expected=repo.status, target=RepositoryStatus.PENDING
            )
        elif repo.status != RepositoryStatus.PENDING:
            raise RepositoryBusyError(f"repository {repository_id} is {repo.status}")
        await self.transition(
            session,
            repository_id,
            expected=RepositoryStatus.PENDING,
            target=RepositoryStatus.CLONING,
        )

    async def claim_incremental_run(
        self, session: AsyncSession, repository_id: uuid.UUID
    ) -> None:
        await self.get(session, repository_id)
        await self.transition(
            session,
            repository_id,
            expected=RepositoryStatus.COMPLETED,
            target=RepositoryStatus.WALKING,
        )

    async def mark_failed(
        self, session: AsyncSession, repository_id: uuid.UUID, *, current: str, reason: str
    ) -> None:
        await self.transition(
            session,
            repository_id,
            expected=current,
            target=RepositoryStatus.FAILED,
            reason=reason,
        )

    async def recover_interrupted(self, session: AsyncSession) -> list[uuid.UUID]:
        """Fail every repository left in an in-flight state by a dead process."""
        ids = await self._repository_dao.fail_in_states(
            session, [s.value for s in IN_FLIGHT], reason="interrupted"
        )
        for rid in ids:
            log.warning("repository.interrupted", repository_id=str(rid))
        return ids

    async def record_run(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        *,
        failed_units: list[dict],
        refreshed_at: datetime | None = None,
        last_analyzed_commit: str | None = None,
        clone_path: str | None = None,
        default_branch: str | None = None,
    ) -> None:
        """Persist the bookkeeping of a finished run (status is left untouched)."""
        values: dict = {"failed_units": failed_units}
        if refreshed_at is not None:
            values["last_refreshed_at"] = refreshed_at
        if last_analyzed_commit is not None:
            values["last_analyzed_commit"] = last_analyzed_commit
        if clone_path is not None:
            values["clone_path"] = clone_path
        if default_branch is not None:
            values["default_branch"] = default_branch
        await self._repository_dao.update_fields(session, repository_id, **values)

    async def list_refreshed_since(
        self, session: AsyncSession, since: datetime | None
    ) -> list[Repository]:
        return await self._repository_dao.list_refreshed_since(session, since)
