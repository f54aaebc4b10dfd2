"""Generic base DAO: ORM lookups/writes + signed cursor pagination (Core)."""

import base64
import hashlib
import hmac
import json
import os
import uuid
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.core.database import Base

ModelT = TypeVar("ModelT", bound=Base)
T = TypeVar("T")

PAGE_SIZE_MIN = 1
PAGE_SIZE_MAX = 100
PAGE_SIZE_DEFAULT = 20

# asyncpg rejects statements with more than 32767 bind parameters
ROWS_PER_STATEMENT = 1000

_CURSOR_SECRET: bytes = os.environ.get(
    "CODEATLAS_CURSOR_SECRET", "codeatlas-cursor-secret"
).encode()


def chunked(items: Iterable[T], size: int = ROWS_PER_STATEMENT) -> Iterator[list[T]]:
    """Yield *items* in lists of at most *size*."""
    batch: list[T] = []
    for item in items:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


class InvalidCursorError(ValueError):
    """Raised when a cursor string is malformed or its signature does not match."""


@dataclass
class Cursor:
    created_at: datetime
    id: uuid.UUID


@dataclass
class Page(Generic[ModelT]):
    data: list[ModelT]
    next_cursor: str | None
    has_more: bool


def _sign(payload: str) -> str:
    return hmac.new(_CURSOR_SECRET, payload.encode(), hashlib.sha256).hexdigest()[:16]


def encode_cursor(created_at: datetime, row_id: uuid.UUID) -> str:
    """Encode the ``(created_at, id)`` sort key of the last row into an opaque token."""
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    payload = json.dumps({"c": created_at.isoformat(), "i": str(row_id)})
    return base64.urlsafe_b64encode(f"{payload}|{_sign(payload)}".encode()).decode()


def decode_cursor(cursor: str) -> Cursor:
    """Inverse of :func:`encode_cursor`.

    Raises ``InvalidCursorError`` for malformed or tampered tokens.
    """
    try:
        raw = base64.urlsafe_b64decode(cursor.encode()).decode()
        payload, sig = raw.rsplit("|", 1)
        if not hmac.compare_digest(sig, _sign(payload)):
            raise InvalidCursorError(f"cursor signature mismatch: {cursor!r}")
        data = json.loads(payload)
        return Cursor(created_at=datetime.fromisoformat(data["c"]), id=uuid.UUID(data["i"]))
    except InvalidCursorError:
        raise
    except (json.JSONDecodeError, KeyError, ValueError, UnicodeDecodeError) as exc:
        raise InvalidCursorError(f"invalid cursor: {cursor!r}") from exc


class BaseDAO(Generic[ModelT]):
    """Base data-access object. Subclasses set the ``model`` class attribute.

    DAOs never commit: every method runs inside the caller's transaction.
    """

    model: type[ModelT]

    @staticmethod
    def _require_pk(pk: uuid.UUID) -> None:
        if pk is None:
            raise ValueError("pk must not be None")

    async def get_by_id(self, session: AsyncSession, pk: uuid.UUID) -> ModelT | None:
        self._require_pk(pk)
        return await session.get(self.model, pk)

    async def create(self, session: AsyncSession, **values: Any) -> ModelT:
        obj = self.model(**values)
        session.add(obj)
        await session.flush()
        await session.refresh(obj)
        return obj

    async def paginate(
        self,
        session: AsyncSession,
        query: Select,
        cursor: str | None = None,
        page_size: int = PAGE_SIZE_DEFAULT,
    ) -> Page[ModelT]:
        """Keyset-paginate *query* on ``(created_at DESC, id DESC)``.

        Callers must not add their own ORDER BY / LIMIT.
        """
        page_size = max(PAGE_SIZE_MIN, min(page_size, PAGE_SIZE_MAX))
        table = self.model.__table__

        if cursor:
            cur = decode_cursor(cursor)
            query = query.where(tuple_(table.c.created_at, table.c.id) < (cur.created_at, cur.id))

        query = query.order_by(table.c.created_at.desc(), table.c.id.desc()).limit(page_size + 1)
        result = await session.execute(query)
        rows = list(result.scalars().all())

        has_more = len(rows) > page_size
        data = rows[:page_size]
        next_cursor = None
        if has_more and data:
            next_cursor = encode_cursor(data[-1].created_at, data[-1].id)
        return Page(data=data, next_cursor=next_cursor, has_more=has_more)
