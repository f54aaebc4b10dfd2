"""Work items and results of an ingestion run."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from codeatlas.engines.extraction.models import ParseResult
from codeatlas.engines.git_reader.models import CommitInfo
from codeatlas.engines.ingestion.errors import UnitFailure


@dataclass(frozen=True)
class WorkUnit:
    """One file touched by one commit."""

    commit: CommitInfo
    commit_id: uuid.UUID
    file_path: str
    file_id: uuid.UUID
    language: str | None


@dataclass
class ExtractedFile:
    unit: WorkUnit
    content: str
    parsed: ParseResult


@dataclass
class AnalysisResult:
    repository_id: uuid.UUID
    status: str = "pending"
    commits_walked: int = 0
    file_changes: int = 0
    files_extracted: int = 0
    embeddings_stored: int = 0
    ownership_files: int = 0
    failed_units: list[UnitFailure] = field(default_factory=list)


@dataclass
class IncrementalResult(AnalysisResult):
    commit_sha: str = ""
    # every commit the push brought in, newest first
    commit_shas: list[str] = field(default_factory=list)
    changed_files: list[str] = field(default_factory=list)
    # file_path -> vectors recorded at commit_sha; input to risk analysis
    new_embeddings: dict[str, list[list[float]]] = field(default_factory=dict)
