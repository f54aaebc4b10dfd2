"""code_embeddings table: one vector per function unit per revision."""

import uuid
from typing import Optional

from sqlalchemy import Double, ForeignKey, Index, Integer, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column

from codeatlas.core.database import Base, TimestampMixin

# unit_name used when extraction found no function in a revision
FILE_UNIT = "<file>"


class CodeEmbedding(TimestampMixin, Base):
    __tablename__ = "code_embeddings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    file_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("repository_files.id", ondelete="CASCADE"),
        nullable=False,
    )
    commit_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("commits.id", ondelete="CASCADE"),
        nullable=False,
    )
    unit_name: Mapped[str] = mapped_column(Text, nullable=False)
    start_line: Mapped[Optional[int]] = mapped_column(Integer)
    end_line: Mapped[Optional[int]] = mapped_column(Integer)
    embedding: Mapped[list[float]] = mapped_column(ARRAY(Double), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "file_id", "commit_id", "unit_name", name="uq_code_embeddings_file_commit_unit"
        ),
        Index("idx_code_embeddings_file", "file_id"),
        Index("idx_code_embeddings_commit", "commit_id"),
    )
