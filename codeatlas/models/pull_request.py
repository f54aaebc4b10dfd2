"""pull_requests and pr_files_changed tables."""

import uuid
from typing import Optional

from sqlalchemy import Double, Enum, ForeignKey, Index, Integer, Text, UniqueConstraint, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from codeatlas.core.database import Base, TimestampMixin

pr_state_enum = Enum("open", "closed", "merged", name="pr_state", create_type=False)


class PullRequest(TimestampMixin, Base):
    __tablename__ = "pull_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    repository_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("repositories.id", ondelete="CASCADE"),
        nullable=False,
    )
    pr_number: Mapped[int] = mapped_column(Integer, nullable=False)
    state: Mapped[str] = mapped_column(pr_state_enum, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text)
    author_login: Mapped[Optional[str]] = mapped_column(Text)
    head_sha: Mapped[Optional[str]] = mapped_column(Text)
    base_branch: Mapped[Optional[str]] = mapped_column(Text)
    risk_score: Mapped[Optional[float]] = mapped_column(Double)

    __table_args__ = (
        UniqueConstraint("repository_id", "pr_number", name="uq_pull_requests_repository_number"),
        Index("idx_pull_requests_open", "repository_id", postgresql_where=text("state = 'open'")),
    )


class PrFileChanged(Base):
    __tablename__ = "pr_files_changed"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    pull_request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("pull_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    file_path: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("pull_request_id", "file_path", name="uq_pr_files_changed_pr_path"),
    )
