"""OwnershipService: stored file ownership distributions."""

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.dao.file_ownership_dao import FileOwnershipDAO
from codeatlas.models.file_ownership import FileOwnership


class OwnershipService:
    def __init__(self, ownership_dao: FileOwnershipDAO) -> None:
        self._ownership_dao = ownership_dao

    async def list_by_file(self, session: AsyncSession, file_id: uuid.UUID) -> list[FileOwnership]:
        return await self._ownership_dao.list_by_file(session, file_id)

    async def replace(
        self, session: AsyncSession, file_id: uuid.UUID, shares: dict[str, float]
    ) -> None:
        await self._ownership_dao.replace_for_file(session, file_id, shares)
