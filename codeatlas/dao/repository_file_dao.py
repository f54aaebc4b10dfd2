"""RepositoryFileDAO and FileChangeDAO: tracked paths and per-commit line stats."""

import uuid

from sqlalchemy import func, select
from sqlalchemy import exists as sa_exists
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.dao.base import BaseDAO
from codeatlas.models.commit import Commit
from codeatlas.models.file_change import FileChange
from codeatlas.models.repository_file import RepositoryFile


class RepositoryFileDAO(BaseDAO[RepositoryFile]):
    model = RepositoryFile

    async def get_by_path(
        self, session: AsyncSession, repository_id: uuid.UUID, file_path: str
    ) -> RepositoryFile | None:
        stmt = select(RepositoryFile).where(
            RepositoryFile.repository_id == repository_id,
            RepositoryFile.file_path == file_path,
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    async def path_index(
        self, session: AsyncSession, repository_id: uuid.UUID
    ) -> dict[str, uuid.UUID]:
        """Map every tracked path of the repository to its file id."""
        stmt = select(RepositoryFile.file_path, RepositoryFile.id).where(
            RepositoryFile.repository_id == repository_id
        )
        result = await session.execute(stmt)
        return {path: fid for path, fid in result.all()}

    async def upsert(
        self,
        session: AsyncSession,
        *,
        repository_id: uuid.UUID,
        file_path: str,
        language: str | None,
        total_lines: int | None = None,
    ) -> uuid.UUID:
        """Insert the path if new, else refresh language / total_lines; returns the id."""
        set_: dict = {"language": language, "updated_at": func.now()}
        if total_lines is not None:
            set_["total_lines"] = total_lines
        stmt = (
            insert(RepositoryFile)
            .values(
                repository_id=repository_id,
                file_path=file_path,
                language=language,
                total_lines=total_lines,
            )
            .on_conflict_do_update(constraint="uq_repository_files_repository_path", set_=set_)
            .returning(RepositoryFile.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one()


class FileChangeDAO(BaseDAO[FileChange]):
    model = FileChange

    async def exists_for(
        self, session: AsyncSession, commit_id: uuid.UUID, file_id: uuid.UUID
    ) -> bool:
        stmt = select(
            sa_exists().where(FileChange.commit_id == commit_id, FileChange.file_id == file_id)
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    async def insert_if_absent(
        self,
        session: AsyncSession,
        *,
        commit_id: uuid.UUID,
        file_id: uuid.UUID,
        additions: int,
        deletions: int,
        author_name: str,
    ) -> bool:
        """Append one change row; returns False when ``(commit, file)`` already exists."""
        stmt = (
            insert(FileChange)
            .values(
                commit_id=commit_id,
                file_id=file_id,
                additions=additions,
                deletions=deletions,
                author_name=author_name,
            )
            .on_conflict_do_nothing(constraint="uq_file_changes_commit_file")
        )
        result = await session.execute(stmt)
        return result.rowcount > 0

    async def count_by_author(self, session: AsyncSession, file_id: uuid.UUID) -> dict[str, int]:
        stmt = (
            select(FileChange.author_name, func.count())
            .where(FileChange.file_id == file_id)
            .group_by(FileChange.author_name)
        )
        result = await session.execute(stmt)
        return {author: n for author, n in result.all()}

    async def touched_file_ids(
        self, session: AsyncSession, repository_id: uuid.UUID
    ) -> list[uuid.UUID]:
        stmt = (
            select(FileChange.file_id)
            .join(Commit, Commit.id == FileChange.commit_id)
            .where(Commit.repository_id == repository_id)
            .distinct()
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
