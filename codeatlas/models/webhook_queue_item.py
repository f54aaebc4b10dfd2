"""webhook_queue table: durable inbound event queue."""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, Index, Integer, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from codeatlas.core.database import Base, TimestampMixin


class QueueItemStatus(str, enum.Enum):
    """pending -> processing -> done | failed; failed -> processing while retries remain."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


webhook_status_enum = Enum(
    *[s.value for s in QueueItemStatus], name="webhook_status", create_type=False
)


class WebhookQueueItem(TimestampMixin, Base):
    __tablename__ = "webhook_queue"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    event_type: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_id: Mapped[Optional[str]] = mapped_column(Text, unique=True)
    payload: Mapped[dict] = mapped_column(JSONB, nullable=False)
    status: Mapped[str] = mapped_column(
        webhook_status_enum, nullable=False, server_default=text("'pending'")
    )
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    last_error: Mapped[Optional[str]] = mapped_column(Text)
    next_attempt_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index(
            "idx_webhook_queue_claimable",
            "created_at",
            postgresql_where=text("status IN ('pending', 'failed')"),
        ),
    )
