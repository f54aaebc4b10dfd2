"""OwnershipRunner: load revisions, compute ownership, replace stored rows."""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codeatlas.engines.embedding.revisions import UnitRevision
from codeatlas.engines.ownership.calculator import calculate_ownership
from codeatlas.services.embedding_service import EmbeddingService
from codeatlas.services.history_service import HistoryService
from codeatlas.services.ownership_service import OwnershipService

log = structlog.get_logger("codeatlas.engine")


class OwnershipRunner:
    def __init__(
        self,
        embedding_service: EmbeddingService,
        history_service: HistoryService,
        ownership_service: OwnershipService,
    ) -> None:
        self._embedding_service = embedding_service
        self._history_service = history_service
        self._ownership_service = ownership_service

    async def calculate_semantic_ownership(
        self, session: AsyncSession, file_id: uuid.UUID, repository_id: uuid.UUID
    ) -> dict[str, float]:
        """Recompute and store the ownership distribution of one file."""
        rows = await self._embedding_service.revisions_for_file(session, file_id)
        revisions = [UnitRevision.from_row(r) for r in rows]
        counts = None
        if not revisions:
            counts = await self._history_service.change_counts(session, file_id)
        shares = calculate_ownership(revisions, counts)
        await self._ownership_service.replace(session, file_id, shares)
        log.debug(
            "ownership.calculated",
            repository_id=str(repository_id),
            file_id=str(file_id),
            authors=len(shares),
            fallback=counts is not None,
        )
        return shares

    async def run_for_files(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        repository_id: uuid.UUID,
        file_ids: list[uuid.UUID],
    ) -> int:
        """Recompute each file in its own transaction; returns files processed."""
        for file_id in file_ids:
            async with session_factory() as session:
                async with session.begin():
                    await self.calculate_semantic_ownership(session, file_id, repository_id)
        return len(file_ids)
