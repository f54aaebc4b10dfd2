"""Ownership, similarity, risk and negative-score schemas."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class OwnershipEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    author_name: str
    semantic_score: float


class FileOwnershipResponse(BaseModel):
    file_id: uuid.UUID
    file_path: str
    owners: list[OwnershipEntry]


class SimilarFile(BaseModel):
    file_id: uuid.UUID
    file_path: str
    similarity: float


class RiskRequest(BaseModel):
    changed_files: list[str] = Field(min_length=1)
    # file_path -> vectors; when omitted the newest stored vectors of each file are used
    embeddings: dict[str, list[list[float]]] | None = None
    commit_sha: str | None = None


class PrRiskResponse(BaseModel):
    pr_number: int
    title: str | None
    structural_overlap: float
    semantic_overlap: float
    risk: float
    conflicting_files: list[str]


class PrConflictResponse(BaseModel):
    pr_a: int
    pr_b: int
    structural_overlap: float
    semantic_overlap: float
    risk: float
    shared_files: list[str]


class RiskResponse(BaseModel):
    risk_score: float
    structural_overlap: float
    semantic_overlap: float
    blocked: bool
    conflicting_prs: list[PrRiskResponse]
    conflicts: list[PrConflictResponse]


class NegativeScoreResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    contributor_name: str
    raw_score: float
    normalized_score: float
    event_count: int
    total_commits: int
    last_calculated_at: datetime


class ReplacementEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    file_id: uuid.UUID
    unit_name: str
    original_author_name: str
    replacement_author_name: str
    original_commit_id: uuid.UUID
    replacement_commit_id: uuid.UUID
    similarity: float
    time_delta_seconds: float
    commit_message_signal: float
    is_fix_signal: bool
    event_score: float


class RecomputeResponse(BaseModel):
    repository_id: uuid.UUID
    contributors: int
