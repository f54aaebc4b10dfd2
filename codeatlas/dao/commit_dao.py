"""CommitDAO: commits table operations."""

import uuid
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.dao.base import BaseDAO, chunked
from codeatlas.models.commit import Commit


class CommitDAO(BaseDAO[Commit]):
    model = Commit

    # ── read ──────────────────────────────────────────────────────────────

    async def get_by_sha(
        self, session: AsyncSession, repository_id: uuid.UUID, sha: str
    ) -> Commit | None:
        stmt = select(Commit).where(Commit.repository_id == repository_id, Commit.sha == sha)
        result = await session.execute(stmt)
        return result.scalars().first()

    async def existing_shas(
        self, session: AsyncSession, repository_id: uuid.UUID, shas: Iterable[str]
    ) -> dict[str, uuid.UUID]:
        """Map each already-persisted sha among *shas* to its commit id."""
        found: dict[str, uuid.UUID] = {}
        for batch in chunked(shas):
            stmt = select(Commit.sha, Commit.id).where(
                Commit.repository_id == repository_id, Commit.sha.in_(batch)
            )
            result = await session.execute(stmt)
            found.update(result.tuples().all())
        return found

    async def generations(
        self, session: AsyncSession, repository_id: uuid.UUID, shas: Iterable[str]
    ) -> dict[str, int]:
        """Stored generation of each persisted sha among *shas*."""
        found: dict[str, int] = {}
        for batch in chunked(shas):
            stmt = select(Commit.sha, Commit.generation).where(
                Commit.repository_id == repository_id, Commit.sha.in_(batch)
            )
            result = await session.execute(stmt)
            found.update(result.tuples().all())
        return found

    async def count_by_author(
        self, session: AsyncSession, repository_id: uuid.UUID
    ) -> dict[str, int]:
        stmt = (
            select(Commit.author_name, func.count())
            .where(Commit.repository_id == repository_id)
            .group_by(Commit.author_name)
        )
        result = await session.execute(stmt)
        return {author: n for author, n in result.all()}

    # ── write ─────────────────────────────────────────────────────────────

    async def insert_if_absent(
        self,
        session: AsyncSession,
        *,
        repository_id: uuid.UUID,
        sha: str,
        author_name: str,
        author_email: str | None,
        message: str | None,
        committed_at: datetime,
        generation: int = 0,
    ) -> uuid.UUID:
        """Insert a commit unless ``(repository_id, sha)`` exists; return its id either way."""
        stmt = (
            insert(Commit)
            .values(
                repository_id=repository_id,
                sha=sha,
                author_name=author_name,
                author_email=author_email,
                message=message,
                committed_at=committed_at,
                generation=generation,
            )
            .on_conflict_do_nothing(constraint="uq_commits_repository_sha")
            .returning(Commit.id)
        )
        result = await session.execute(stmt)
        commit_id = result.scalar_one_or_none()
        if commit_id is None:
            existing = await self.get_by_sha(session, repository_id, sha)
            commit_id = existing.id
        return commit_id
