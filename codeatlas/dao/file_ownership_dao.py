"""FileOwnershipDAO: per-file ownership distribution."""

import uuid

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.dao.base import BaseDAO
from codeatlas.models.file_ownership import FileOwnership


class FileOwnershipDAO(BaseDAO[FileOwnership]):
    model = FileOwnership

    async def list_by_file(self, session: AsyncSession, file_id: uuid.UUID) -> list[FileOwnership]:
        stmt = (
            select(FileOwnership)
            .where(FileOwnership.file_id == file_id)
            .order_by(FileOwnership.semantic_score.desc(), FileOwnership.author_name)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def replace_for_file(
        self, session: AsyncSession, file_id: uuid.UUID, shares: dict[str, float]
    ) -> None:
        """Delete + insert the file's distribution in the caller's transaction."""
        await session.execute(delete(FileOwnership).where(FileOwnership.file_id == file_id))
        if not shares:
            return
        stmt = insert(FileOwnership).values(
            [
                {"file_id": file_id, "author_name": author, "semantic_score": score}
                for author, score in shares.items()
            ]
        )
        await session.execute(stmt)
