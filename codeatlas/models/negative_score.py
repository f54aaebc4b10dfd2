"""contributor_negative_scores and code_replacement_events tables."""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Double,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from codeatlas.core.database import Base, TimestampMixin


class ContributorNegativeScore(TimestampMixin, Base):
    __tablename__ = "contributor_negative_scores"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    repository_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("repositories.id", ondelete="CASCADE"),
        nullable=False,
    )
    contributor_name: Mapped[str] = mapped_column(Text, nullable=False)
    raw_score: Mapped[float] = mapped_column(Double, nullable=False, server_default=text("0"))
    normalized_score: Mapped[float] = mapped_column(
        Double, nullable=False, server_default=text("0")
    )
    event_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    total_commits: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    last_calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "repository_id", "contributor_name", name="uq_negative_scores_repository_contributor"
        ),
    )


class CodeReplacementEvent(TimestampMixin, Base):
    """Immutable detection record, inserted once, never updated."""

    __tablename__ = "code_replacement_events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    repository_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("repositories.id", ondelete="CASCADE"),
        nullable=False,
    )
    file_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("repository_files.id", ondelete="CASCADE"),
        nullable=False,
    )
    unit_name: Mapped[str] = mapped_column(Text, nullable=False)
    original_commit_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("commits.id", ondelete="CASCADE"), nullable=False
    )
    replacement_commit_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("commits.id", ondelete="CASCADE"), nullable=False
    )
    original_author_name: Mapped[str] = mapped_column(Text, nullable=False)
    replacement_author_name: Mapped[str] = mapped_column(Text, nullable=False)
    similarity: Mapped[float] = mapped_column(Double, nullable=False)
    time_delta_seconds: Mapped[float] = mapped_column(Double, nullable=False)
    commit_message_signal: Mapped[float] = mapped_column(Double, nullable=False)
    is_fix_signal: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    event_score: Mapped[float] = mapped_column(Double, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "file_id",
            "unit_name",
            "original_commit_id",
            "replacement_commit_id",
            name="uq_replacement_events_pair",
        ),
        Index("idx_replacement_events_original_author", "repository_id", "original_author_name"),
    )
