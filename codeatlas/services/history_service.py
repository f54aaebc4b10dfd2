"""HistoryService: branches, commits, tracked files and file changes."""

import uuid
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.dao.branch_dao import BranchDAO
from codeatlas.dao.commit_dao import CommitDAO
from codeatlas.dao.repository_file_dao import FileChangeDAO, RepositoryFileDAO
from codeatlas.models.branch import Branch
from codeatlas.models.repository_file import RepositoryFile
from codeatlas.services import NotFoundError


class HistoryService:
    """Stateless service over the append-only history tables."""

    def __init__(
        self,
        branch_dao: BranchDAO,
        commit_dao: CommitDAO,
        file_dao: RepositoryFileDAO,
        file_change_dao: FileChangeDAO,
    ) -> None:
        self._branch_dao = branch_dao
        self._commit_dao = commit_dao
        self._file_dao = file_dao
        self._file_change_dao = file_change_dao

    # ── branches ──────────────────────────────────────────────────────────

    async def save_branch(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        name: str,
        head_sha: str | None,
        is_default: bool,
    ) -> uuid.UUID:
        return await self._branch_dao.upsert(
            session,
            repository_id=repository_id,
            name=name,
            head_commit_sha=head_sha,
            is_default=is_default,
        )

    async def prune_branches(
        self, session: AsyncSession, repository_id: uuid.UUID, keep: Iterable[str]
    ) -> int:
        return await self._branch_dao.prune(session, repository_id, keep)

    async def list_branches(self, session: AsyncSession, repository_id: uuid.UUID) -> list[Branch]:
        return await self._branch_dao.list_by_repository(session, repository_id)

    async def link_commits(
        self, session: AsyncSession, branch_id: uuid.UUID, commit_ids: list[uuid.UUID]
    ) -> int:
        return await self._branch_dao.link_commits(session, branch_id, commit_ids)

    # ── commits ───────────────────────────────────────────────────────────

    async def existing_shas(
        self, session: AsyncSession, repository_id: uuid.UUID, shas: Iterable[str]
    ) -> dict[str, uuid.UUID]:
        return await self._commit_dao.existing_shas(session, repository_id, shas)

    async def commit_generations(
        self, session: AsyncSession, repository_id: uuid.UUID, shas: Iterable[str]
    ) -> dict[str, int]:
        """Generation numbers of the already recorded commits among *shas*."""
        return await self._commit_dao.generations(session, repository_id, shas)

    async def save_commit(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        *,
        sha: str,
        author_name: str,
        author_email: str | None,
        message: str | None,
        committed_at: datetime,
        generation: int = 0,
    ) -> uuid.UUID:
        return await self._commit_dao.insert_if_absent(
            session,
            repository_id=repository_id,
            sha=sha,
            author_name=author_name,
            author_email=author_email,
            message=message,
            committed_at=committed_at,
            generation=generation,
        )

    async def commit_counts(
        self, session: AsyncSession, repository_id: uuid.UUID
    ) -> dict[str, int]:
        """Number of commits authored by each contributor in the repository."""
        return await self._commit_dao.count_by_author(session, repository_id)

    # ── files ─────────────────────────────────────────────────────────────

    async def get_file(
        self, session: AsyncSession, repository_id: uuid.UUID, file_id: uuid.UUID
    ) -> RepositoryFile:
        """Raises :class:`NotFoundError` unless *file_id* belongs to the repository."""
        repo_file = await self._file_dao.get_by_id(session, file_id)
        if repo_file is None or repo_file.repository_id != repository_id:
            raise NotFoundError("file not found")
        return repo_file

    async def save_file(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        file_path: str,
        language: str | None,
        total_lines: int | None = None,
    ) -> uuid.UUID:
        return await self._file_dao.upsert(
            session,
            repository_id=repository_id,
            file_path=file_path,
            language=language,
            total_lines=total_lines,
        )

    async def path_index(
        self, session: AsyncSession, repository_id: uuid.UUID
    ) -> dict[str, uuid.UUID]:
        return await self._file_dao.path_index(session, repository_id)

    async def record_file_change(
        self,
        session: AsyncSession,
        *,
        commit_id: uuid.UUID,
        file_id: uuid.UUID,
        additions: int,
        deletions: int,
        author_name: str,
    ) -> bool:
        """Append a change row unless one exists for ``(commit, file)``.

        Returns True when a row was written.
        """
        if await self._file_change_dao.exists_for(session, commit_id, file_id):
            return False
        return await self._file_change_dao.insert_if_absent(
            session,
            commit_id=commit_id,
            file_id=file_id,
            additions=additions,
            deletions=deletions,
            author_name=author_name,
        )

    async def change_counts(self, session: AsyncSession, file_id: uuid.UUID) -> dict[str, int]:
        return await self._file_change_dao.count_by_author(session, file_id)

    async def touched_file_ids(
        self, session: AsyncSession, repository_id: uuid.UUID
    ) -> list[uuid.UUID]:
        return await self._file_change_dao.touched_file_ids(session, repository_id)
