"""DependencyDAO: file import edges."""

import uuid

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.dao.base import BaseDAO, chunked
from codeatlas.models.dependency import Dependency


class DependencyDAO(BaseDAO[Dependency]):
    model = Dependency

    async def targets_of(self, session: AsyncSession, source_file_id: uuid.UUID) -> list[uuid.UUID]:
        stmt = select(Dependency.target_file_id).where(Dependency.source_file_id == source_file_id)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def replace_for_source(
        self,
        session: AsyncSession,
        source_file_id: uuid.UUID,
        target_file_ids: list[uuid.UUID],
        dependency_type: str = "import",
    ) -> int:
        """Replace every outgoing edge of *source_file_id*."""
        await session.execute(delete(Dependency).where(Dependency.source_file_id == source_file_id))
        inserted = 0
        for batch in chunked(dict.fromkeys(target_file_ids)):
            stmt = (
                insert(Dependency)
                .values(
                    [
                        {
                            "source_file_id": source_file_id,
                            "target_file_id": target,
                            "dependency_type": dependency_type,
                        }
                        for target in batch
                    ]
                )
                .on_conflict_do_nothing(constraint="uq_dependencies_source_target")
            )
            result = await session.execute(stmt)
            inserted += result.rowcount
        return inserted
