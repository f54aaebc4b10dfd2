"""WebhookQueueService: durable, claim-based queue of inbound repository events."""

import uuid
from datetime import timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.core.config import QueueConfig
from codeatlas.dao.webhook_queue_dao import WebhookQueueDAO
from codeatlas.models.webhook_queue_item import WebhookQueueItem

log = structlog.get_logger("codeatlas.service")


class WebhookQueueService:
    def __init__(self, queue_dao: WebhookQueueDAO, config: QueueConfig | None = None) -> None:
        self._queue_dao = queue_dao
        self._config = config or QueueConfig()

    @property
    def config(self) -> QueueConfig:
        return self._config

    async def enqueue(
        self,
        session: AsyncSession,
        event_type: str,
        payload: dict,
        delivery_id: str | None = None,
    ) -> uuid.UUID | None:
        """Store an event as ``pending``.

        A redelivery (same *delivery_id*) is a silent no-op and returns None.
        """
        item_id = await self._queue_dao.enqueue(
            session, event_type=event_type, payload=payload, delivery_id=delivery_id
        )
        if item_id is None:
            log.info("queue.duplicate_delivery", delivery_id=delivery_id, event_type=event_type)
        else:
            log.info("queue.enqueued", item_id=str(item_id), event_type=event_type)
        return item_id

    async def claim_next(self, session: AsyncSession) -> WebhookQueueItem | None:
        item = await self._queue_dao.claim_next(session, self._config.max_retries)
        if item is not None:
            log.info(
                "queue.claimed",
                item_id=str(item.id),
                event_type=item.event_type,
                retry_count=item.retry_count,
            )
        return item

    async def complete(self, session: AsyncSession, item_id: uuid.UUID) -> None:
        await self._queue_dao.mark_done(session, item_id)

    async def fail(
        self, session: AsyncSession, item_id: uuid.UUID, error: str, retry_count: int
    ) -> None:
        """Record a failed attempt; past ``max_retries`` the item is terminal."""
        await self._queue_dao.mark_failed(
            session,
            item_id,
            error=error,
            retry_delay=timedelta(seconds=self._config.retry_delay),
        )
        if retry_count + 1 >= self._config.max_retries:
            log.error("queue.item_exhausted", item_id=str(item_id), error=error)
        else:
            log.warning("queue.item_failed", item_id=str(item_id), error=error)

    async def recover_stale(self, session: AsyncSession) -> int:
        recovered = await self._queue_dao.recover_stale(session, self._config.stale_after)
        if recovered:
            log.warning("queue.recovered_stale", count=recovered)
        return recovered

    async def stats(self, session: AsyncSession) -> dict[str, int]:
        return await self._queue_dao.count_by_status(session)
