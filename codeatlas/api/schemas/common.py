"""Cursor pagination envelope."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class PageMeta(BaseModel):
    next_cursor: str | None
    has_more: bool


class PaginatedResponse(BaseModel, Generic[T]):
    data: list[T]
    meta: PageMeta
