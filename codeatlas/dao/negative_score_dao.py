"""NegativeScoreDAO and ReplacementEventDAO."""

import uuid
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.dao.base import BaseDAO, Page, chunked
from codeatlas.models.negative_score import CodeReplacementEvent, ContributorNegativeScore

_SCORE_COLUMNS = ("raw_score", "normalized_score", "event_count", "total_commits")


def _keep_timestamp(
    row: dict[str, Any], stored: ContributorNegativeScore | None
) -> dict[str, Any]:
    if stored is None or any(getattr(stored, col) != row[col] for col in _SCORE_COLUMNS):
        return row
    return {**row, "last_calculated_at": stored.last_calculated_at}


class NegativeScoreDAO(BaseDAO[ContributorNegativeScore]):
    model = ContributorNegativeScore

    async def list_by_repository(
        self, session: AsyncSession, repository_id: uuid.UUID
    ) -> list[ContributorNegativeScore]:
        stmt = (
            select(ContributorNegativeScore)
            .where(ContributorNegativeScore.repository_id == repository_id)
            .order_by(
                ContributorNegativeScore.normalized_score.desc(),
                ContributorNegativeScore.contributor_name,
            )
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def replace_for_repository(
        self, session: AsyncSession, repository_id: uuid.UUID, rows: list[dict[str, Any]]
    ) -> int:
        """Swap the repository's score rows; caller owns the transaction.

        A contributor whose score columns come out unchanged keeps its stored
        ``last_calculated_at``, so recomputing unchanged history rewrites
        identical rows.
        """
        previous = {
            row.contributor_name: row
            for row in await self.list_by_repository(session, repository_id)
        }
        rows = [_keep_timestamp(row, previous.get(row["contributor_name"])) for row in rows]
        await session.execute(
            delete(ContributorNegativeScore).where(
                ContributorNegativeScore.repository_id == repository_id
            )
        )
        for batch in chunked(rows):
            await session.execute(
                insert(ContributorNegativeScore).values(
                    [{**row, "repository_id": repository_id} for row in batch]
                )
            )
        return len(rows)


class ReplacementEventDAO(BaseDAO[CodeReplacementEvent]):
    model = CodeReplacementEvent

    async def list_by_repository(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        cursor: str | None = None,
        page_size: int = 20,
        original_author_name: str | None = None,
    ) -> Page[CodeReplacementEvent]:
        query = select(CodeReplacementEvent).where(
            CodeReplacementEvent.repository_id == repository_id
        )
        if original_author_name is not None:
            query = query.where(CodeReplacementEvent.original_author_name == original_author_name)
        return await self.paginate(session, query, cursor, page_size)

    async def batch_insert(self, session: AsyncSession, rows: list[dict[str, Any]]) -> int:
        """Insert-if-absent on the replacement pair key; returns rows inserted."""
        inserted = 0
        for batch in chunked(rows):
            stmt = (
                insert(CodeReplacementEvent)
                .values(batch)
                .on_conflict_do_nothing(constraint="uq_replacement_events_pair")
            )
            result = await session.execute(stmt)
            inserted += result.rowcount
        return inserted
