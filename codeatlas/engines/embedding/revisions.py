"""Embedding revisions: one unit's vector at one commit, with authorship."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class UnitRevision:
    file_id: uuid.UUID
    unit_name: str
    commit_id: uuid.UUID
    sha: str
    author_name: str
    committed_at: datetime
    embedding: list[float]
    message: str = ""
    generation: int = 0

    @classmethod
    def from_row(cls, row: Any) -> UnitRevision:
        """Build from a ``CodeEmbeddingDAO.revisions_*`` result row."""
        return cls(
            file_id=row.file_id,
            unit_name=row.unit_name,
            commit_id=row.commit_id,
            sha=row.sha,
            author_name=row.author_name,
            committed_at=row.committed_at,
            embedding=list(row.embedding),
            message=row.message or "",
            generation=row.generation,
        )


def group_by_unit(
    revisions: Iterable[UnitRevision],
) -> dict[tuple[uuid.UUID, str], list[UnitRevision]]:
    """Group revisions per ``(file_id, unit_name)``, each list in commit order."""
    groups: dict[tuple[uuid.UUID, str], list[UnitRevision]] = {}
    for rev in revisions:
        groups.setdefault((rev.file_id, rev.unit_name), []).append(rev)
    for revs in groups.values():
        revs.sort(key=lambda r: (r.committed_at, r.generation, r.sha))
    return groups
