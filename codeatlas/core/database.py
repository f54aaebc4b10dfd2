"""Async database declarative base and shared column mixins."""

from datetime import datetime

from sqlalchemy import DateTime, MetaData, func, text
from sqlalchemy.ext.asyncio import AsyncAttrs, AsyncEngine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Naming convention for constraints (Alembic auto-migration friendly)
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all ORM models."""

    metadata = MetaData(naming_convention=convention)


class TimestampMixin:
    """Mixin that adds created_at / updated_at columns.

    Core ``update()`` statements bypass ``onupdate`` on the ORM side, so DAOs
    that issue bulk updates set ``updated_at=func.now()`` explicitly.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


# Postgres ENUM types the models reference with create_type=False
_ENUM_TYPES: dict[str, tuple[str, ...]] = {
    "repository_status": (
        "pending",
        "cloning",
        "walking",
        "extracting",
        "embedding",
        "computing_ownership",
        "completed",
        "failed",
    ),
    "pr_state": ("open", "closed", "merged"),
    "webhook_status": ("pending", "processing", "done", "failed"),
}


async def create_schema(engine: AsyncEngine) -> None:
    """Create the ENUM types and every table; safe to run on an existing database."""
    import codeatlas.models  # noqa: F401  (registers the tables on Base.metadata)

    async with engine.begin() as conn:
        for name, values in _ENUM_TYPES.items():
            labels = ",".join(f"'{v}'" for v in values)
            await conn.execute(
                text(
                    "DO $$ BEGIN "
                    f"  CREATE TYPE {name} AS ENUM ({labels}); "
                    "EXCEPTION WHEN duplicate_object THEN NULL; END $$;"
                )
            )
        await conn.run_sync(Base.metadata.create_all)
