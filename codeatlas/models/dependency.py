"""dependencies table: directed file -> file import edges (cycles allowed)."""

import uuid

from sqlalchemy import ForeignKey, Index, Text, UniqueConstraint, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from codeatlas.core.database import Base, TimestampMixin


class Dependency(TimestampMixin, Base):
    __tablename__ = "dependencies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    source_file_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("repository_files.id", ondelete="CASCADE"),
        nullable=False,
    )
    target_file_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("repository_files.id", ondelete="CASCADE"),
        nullable=False,
    )
    dependency_type: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'import'")
    )

    __table_args__ = (
        UniqueConstraint(
            "source_file_id", "target_file_id", name="uq_dependencies_source_target"
        ),
        Index("idx_dependencies_target", "target_file_id"),
    )
