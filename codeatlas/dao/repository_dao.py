"""RepositoryDAO: repositories table operations."""

import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.dao.base import BaseDAO, Page
from codeatlas.models.repository import Repository


class RepositoryDAO(BaseDAO[Repository]):
    model = Repository

    # ── read ──────────────────────────────────────────────────────────────

    async def get_by_owner_name(
        self, session: AsyncSession, owner: str, name: str
    ) -> Repository | None:
        stmt = select(Repository).where(Repository.owner == owner, Repository.name == name)
        result = await session.execute(stmt)
        return result.scalars().first()

    async def list_paginated(
        self,
        session: AsyncSession,
        cursor: str | None = None,
        page_size: int = 20,
        status: str | None = None,
    ) -> Page[Repository]:
        query = select(Repository)
        if status is not None:
            query = query.where(Repository.status == status)
        return await self.paginate(session, query, cursor, page_size)

    async def list_in_states(
        self, session: AsyncSession, states: Iterable[str]
    ) -> list[Repository]:
        stmt = select(Repository).where(Repository.status.in_(list(states)))
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def list_refreshed_since(
        self, session: AsyncSession, since: datetime | None
    ) -> list[Repository]:
        """Completed repositories whose history changed after *since* (all when None)."""
        stmt = select(Repository).where(Repository.status == "completed")
        if since is not None:
            stmt = stmt.where(Repository.last_refreshed_at > since)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    # ── write ─────────────────────────────────────────────────────────────

    async def transition(
        self,
        session: AsyncSession,
        pk: uuid.UUID,
        *,
        expected: str,
        target: str,
        reason: str | None = None,
    ) -> bool:
        """Move *pk* from *expected* to *target* status.

        A single conditional UPDATE; returns False when the row is not in
        *expected* (someone else owns it, or it does not exist).
        """
        self._require_pk(pk)
        stmt = (
            update(Repository)
            .where(Repository.id == pk, Repository.status == expected)
            .values(status=target, status_reason=reason, updated_at=func.now())
            .returning(Repository.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def fail_in_states(
        self, session: AsyncSession, states: Iterable[str], reason: str
    ) -> list[uuid.UUID]:
        """Force every repository in *states* to ``failed``; returns the affected ids."""
        stmt = (
            update(Repository)
            .where(Repository.status.in_(list(states)))
            .values(status="failed", status_reason=reason, updated_at=func.now())
            .returning(Repository.id)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def update_fields(self, session: AsyncSession, pk: uuid.UUID, **values: Any) -> None:
        """Update arbitrary non-status columns of one repository."""
        self._require_pk(pk)
        if "status" in values:
            raise AttributeError("status changes go through transition()")
        stmt = (
            update(Repository)
            .where(Repository.id == pk)
            .values(**values, updated_at=func.now())
        )
        await session.execute(stmt)
