"""file_ownership table: per-file semantic ownership distribution."""

import uuid

from sqlalchemy import Double, ForeignKey, Index, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from codeatlas.core.database import Base, TimestampMixin


class FileOwnership(TimestampMixin, Base):
    __tablename__ = "file_ownership"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    file_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("repository_files.id", ondelete="CASCADE"),
        nullable=False,
    )
    author_name: Mapped[str] = mapped_column(Text, nullable=False)
    semantic_score: Mapped[float] = mapped_column(Double, nullable=False)

    __table_args__ = (
        UniqueConstraint("file_id", "author_name", name="uq_file_ownership_file_author"),
        Index("idx_file_ownership_file", "file_id"),
    )
