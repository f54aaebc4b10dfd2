"""NegativeScoreService: contributor scores and replacement events."""

import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.dao.negative_score_dao import NegativeScoreDAO, ReplacementEventDAO
from codeatlas.models.negative_score import ContributorNegativeScore


class NegativeScoreService:
    def __init__(self, score_dao: NegativeScoreDAO, event_dao: ReplacementEventDAO) -> None:
        self._score_dao = score_dao
        self._event_dao = event_dao

    async def list_scores(
        self, session: AsyncSession, repository_id: uuid.UUID
    ) -> list[ContributorNegativeScore]:
        return await self._score_dao.list_by_repository(session, repository_id)

    async def list_events(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        cursor: str | None = None,
        page_size: int = 20,
        contributor: str | None = None,
    ) -> dict:
        page = await self._event_dao.list_by_repository(
            session, repository_id, cursor, page_size, original_author_name=contributor
        )
        return {"data": page.data, "next_cursor": page.next_cursor, "has_more": page.has_more}

    async def record_events(self, session: AsyncSession, rows: list[dict[str, Any]]) -> int:
        return await self._event_dao.batch_insert(session, rows)

    async def replace_scores(
        self, session: AsyncSession, repository_id: uuid.UUID, rows: list[dict[str, Any]]
    ) -> int:
        return await self._score_dao.replace_for_repository(session, repository_id, rows)
