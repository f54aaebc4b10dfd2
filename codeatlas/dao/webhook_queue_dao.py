"""WebhookQueueDAO: claim-based durable queue on PostgreSQL."""

import uuid
from datetime import timedelta

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.dao.base import BaseDAO
from codeatlas.models.webhook_queue_item import WebhookQueueItem


class WebhookQueueDAO(BaseDAO[WebhookQueueItem]):
    model = WebhookQueueItem

    async def enqueue(
        self,
        session: AsyncSession,
        *,
        event_type: str,
        payload: dict,
        delivery_id: str | None = None,
    ) -> uuid.UUID | None:
        """Insert a pending item; returns None when *delivery_id* was seen before."""
        stmt = (
            insert(WebhookQueueItem)
            .values(event_type=event_type, payload=payload, delivery_id=delivery_id)
            .on_conflict_do_nothing(index_elements=["delivery_id"])
            .returning(WebhookQueueItem.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def claim_next(self, session: AsyncSession, max_retries: int) -> WebhookQueueItem | None:
        """Atomically move the oldest claimable item to ``processing``.

        Claimable: ``pending``, or ``failed`` with retries left whose backoff has
        elapsed. ``FOR UPDATE SKIP LOCKED`` keeps concurrent workers off the
        same row.
        """
        candidate = (
            select(WebhookQueueItem.id)
            .where(
                or_(
                    WebhookQueueItem.status == "pending",
                    (WebhookQueueItem.status == "failed")
                    & (WebhookQueueItem.retry_count < max_retries)
                    & (WebhookQueueItem.next_attempt_at <= func.now()),
                )
            )
            .order_by(WebhookQueueItem.created_at)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(WebhookQueueItem)
            .where(WebhookQueueItem.id == candidate)
            .values(status="processing", updated_at=func.now())
            .returning(WebhookQueueItem)
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    async def mark_done(self, session: AsyncSession, pk: uuid.UUID) -> None:
        self._require_pk(pk)
        stmt = (
            update(WebhookQueueItem)
            .where(WebhookQueueItem.id == pk, WebhookQueueItem.status == "processing")
            .values(
                status="done",
                last_error=None,
                processed_at=func.now(),
                updated_at=func.now(),
            )
        )
        await session.execute(stmt)

    async def mark_failed(
        self, session: AsyncSession, pk: uuid.UUID, *, error: str, retry_delay: timedelta
    ) -> None:
        """Record a failed attempt; the backoff grows as ``retry_delay * 2**retry_count``."""
        self._require_pk(pk)
        backoff = func.make_interval(0, 0, 0, 0, 0, 0, retry_delay.total_seconds()) * func.power(
            2, WebhookQueueItem.retry_count
        )
        stmt = (
            update(WebhookQueueItem)
            .where(WebhookQueueItem.id == pk, WebhookQueueItem.status == "processing")
            .values(
                status="failed",
                retry_count=WebhookQueueItem.retry_count + 1,
                last_error=error,
                next_attempt_at=func.now() + backoff,
                updated_at=func.now(),
            )
        )
        await session.execute(stmt)

    async def recover_stale(self, session: AsyncSession, older_than: timedelta) -> int:
        """Fail items stuck in ``processing`` longer than *older_than* (crashed worker)."""
        stmt = (
            update(WebhookQueueItem)
            .where(
                WebhookQueueItem.status == "processing",
                WebhookQueueItem.updated_at < func.now() - older_than,
            )
            .values(
                status="failed",
                last_error="worker interrupted",
                next_attempt_at=func.now(),
                updated_at=func.now(),
            )
        )
        result = await session.execute(stmt)
        return result.rowcount

    async def count_by_status(self, session: AsyncSession) -> dict[str, int]:
        stmt = select(WebhookQueueItem.status, func.count()).group_by(WebhookQueueItem.status)
        result = await session.execute(stmt)
        return {status: n for status, n in result.all()}
