"""BranchDAO: branches and commit_branches operations."""

import uuid
from collections.abc import Iterable

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.dao.base import BaseDAO, chunked
from codeatlas.models.branch import Branch, CommitBranch


class BranchDAO(BaseDAO[Branch]):
    model = Branch

    async def list_by_repository(
        self, session: AsyncSession, repository_id: uuid.UUID
    ) -> list[Branch]:
        stmt = select(Branch).where(Branch.repository_id == repository_id).order_by(Branch.name)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def upsert(
        self,
        session: AsyncSession,
        *,
        repository_id: uuid.UUID,
        name: str,
        head_commit_sha: str | None,
        is_default: bool,
    ) -> uuid.UUID:
        """Insert or refresh a branch row; returns its id."""
        stmt = (
            insert(Branch)
            .values(
                repository_id=repository_id,
                name=name,
                head_commit_sha=head_commit_sha,
                is_default=is_default,
            )
            .on_conflict_do_update(
                constraint="uq_branches_repository_name",
                set_={"head_commit_sha": head_commit_sha, "is_default": is_default},
            )
            .returning(Branch.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    async def prune(
        self, session: AsyncSession, repository_id: uuid.UUID, keep: Iterable[str]
    ) -> int:
        """Delete branches of *repository_id* whose name is not in *keep*."""
        stmt = delete(Branch).where(
            Branch.repository_id == repository_id, Branch.name.not_in(list(keep))
        )
        result = await session.execute(stmt)
        return result.rowcount

    async def link_commits(
        self, session: AsyncSession, branch_id: uuid.UUID, commit_ids: list[uuid.UUID]
    ) -> int:
        """Insert-if-absent (commit, branch) links; returns rows inserted."""
        inserted = 0
        for batch in chunked(commit_ids):
            stmt = (
                insert(CommitBranch)
                .values([{"commit_id": cid, "branch_id": branch_id} for cid in batch])
                .on_conflict_do_nothing()
            )
            result = await session.execute(stmt)
            inserted += result.rowcount
        return inserted
