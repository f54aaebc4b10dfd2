"""Repository request/response schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from codeatlas.core.github import parse_repo_url


class RegisterRepositoryRequest(BaseModel):
    """Either ``repo_url`` or both ``owner`` and ``name``."""

    owner: str | None = None
    name: str | None = None
    repo_url: str | None = None
    user_id: uuid.UUID | None = None

    @field_validator("owner", "name", "repo_url", mode="before")
    @classmethod
    def _strip_whitespace(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    def resolved(self) -> tuple[str, str]:
        return self.owner or "", self.name or ""

    @model_validator(mode="after")
    def _resolve_owner_name(self) -> RegisterRepositoryRequest:
        if self.repo_url:
            self.owner, self.name = parse_repo_url(self.repo_url)
        if not self.owner or not self.name:
            raise ValueError("either repo_url or owner and name are required")
        return self


class RepositoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    owner: str
    name: str
    clone_url: str
    default_branch: str | None
    status: str
    status_reason: str | None
    last_analyzed_commit: str | None
    last_refreshed_at: datetime | None
    created_at: datetime


class RepositoryDetail(RepositoryResponse):
    failed_units: list[dict[str, Any]] = []
    running: bool = False

    @field_validator("failed_units", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return v or []
