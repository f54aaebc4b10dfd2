"""repositories table."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, Index, Text, UniqueConstraint, desc, func, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from codeatlas.core.database import Base, TimestampMixin

repository_status_enum = Enum(
    "pending",
    "cloning",
    "walking",
    "extracting",
    "embedding",
    "computing_ownership",
    "completed",
    "failed",
    name="repository_status",
    create_type=False,
)


class Repository(TimestampMixin, Base):
    __tablename__ = "repositories"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    owner: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    clone_url: Mapped[str] = mapped_column(Text, nullable=False)
    clone_path: Mapped[Optional[str]] = mapped_column(Text)
    default_branch: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(
        repository_status_enum, nullable=False, server_default=text("'pending'")
    )
    status_reason: Mapped[Optional[str]] = mapped_column(Text)
    failed_units: Mapped[Optional[list]] = mapped_column(JSONB)
    last_analyzed_commit: Mapped[Optional[str]] = mapped_column(Text)
    last_refreshed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    connected_by_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))

    __table_args__ = (
        UniqueConstraint("owner", "name", name="uq_repositories_owner_name"),
        Index("idx_repositories_status", "status"),
        Index("idx_repositories_cursor", desc("created_at"), desc("id")),
    )
