"""CodeEmbeddingDAO: code_embeddings table operations."""

import uuid
from collections.abc import Collection, Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import Row, func, select, tuple_
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.dao.base import BaseDAO, chunked
from codeatlas.engines.embedding.similarity import cosine_similarity
from codeatlas.models.code_embedding import CodeEmbedding
from codeatlas.models.commit import Commit
from codeatlas.models.repository_file import RepositoryFile

_REVISION_COLUMNS = (
    CodeEmbedding.file_id,
    CodeEmbedding.unit_name,
    CodeEmbedding.embedding,
    Commit.id.label("commit_id"),
    Commit.sha,
    Commit.author_name,
    Commit.committed_at,
    Commit.generation,
    Commit.message,
)


class CodeEmbeddingDAO(BaseDAO[CodeEmbedding]):
    model = CodeEmbedding

    # ── read ──────────────────────────────────────────────────────────────

    async def embedded_pairs(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        commit_ids: Iterable[uuid.UUID] | None = None,
    ) -> set[tuple[uuid.UUID, uuid.UUID]]:
        """``(file_id, commit_id)`` revisions that already have embeddings."""
        stmt = (
            select(CodeEmbedding.file_id, CodeEmbedding.commit_id)
            .join(Commit, Commit.id == CodeEmbedding.commit_id)
            .where(Commit.repository_id == repository_id)
            .distinct()
        )
        if commit_ids is not None:
            stmt = stmt.where(CodeEmbedding.commit_id.in_(list(commit_ids)))
        result = await session.execute(stmt)
        return {(fid, cid) for fid, cid in result.all()}

    async def revisions_for_file(self, session: AsyncSession, file_id: uuid.UUID) -> list[Row]:
        """Every embedding of one file with its commit's author/time, oldest first."""
        stmt = (
            select(*_REVISION_COLUMNS)
            .join(Commit, Commit.id == CodeEmbedding.commit_id)
            .where(CodeEmbedding.file_id == file_id)
            .order_by(
                CodeEmbedding.unit_name, Commit.committed_at, Commit.generation, Commit.sha
            )
        )
        result = await session.execute(stmt)
        return list(result.all())

    async def revisions_for_repository(
        self, session: AsyncSession, repository_id: uuid.UUID
    ) -> list[Row]:
        stmt = (
            select(*_REVISION_COLUMNS)
            .join(Commit, Commit.id == CodeEmbedding.commit_id)
            .where(Commit.repository_id == repository_id)
            .order_by(
                CodeEmbedding.file_id,
                CodeEmbedding.unit_name,
                Commit.committed_at,
                Commit.generation,
                Commit.sha,
            )
        )
        result = await session.execute(stmt)
        return list(result.all())

    def _latest_per_file(
        self,
        repository_id: uuid.UUID,
        *,
        not_after: tuple[datetime, int] | None = None,
        exclude_shas: Collection[str] = (),
    ):
        """Embeddings recorded at the newest commit that touched each file.

        *not_after* is a ``(committed_at, generation)`` bound: commits ordered
        after it are ignored, as are the commits in *exclude_shas*.
        """
        rnk = (
            func.rank()
            .over(
                partition_by=CodeEmbedding.file_id,
                order_by=(
                    Commit.committed_at.desc(),
                    Commit.generation.desc(),
                    Commit.sha.desc(),
                ),
            )
            .label("rnk")
        )
        stmt = (
            select(
                CodeEmbedding.file_id,
                RepositoryFile.file_path,
                CodeEmbedding.embedding,
                rnk,
            )
            .join(Commit, Commit.id == CodeEmbedding.commit_id)
            .join(RepositoryFile, RepositoryFile.id == CodeEmbedding.file_id)
            .where(RepositoryFile.repository_id == repository_id)
        )
        if not_after is not None:
            stmt = stmt.where(tuple_(Commit.committed_at, Commit.generation) <= not_after)
        if exclude_shas:
            stmt = stmt.where(Commit.sha.not_in(list(exclude_shas)))
        return stmt.subquery()

    async def latest_by_path(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        paths: Iterable[str],
        *,
        not_after: tuple[datetime, int] | None = None,
        exclude_shas: Collection[str] = (),
    ) -> dict[str, list[list[float]]]:
        """Newest vectors of each path in *paths* (paths without embeddings are absent).

        With *not_after* or *exclude_shas* the newest revision is chosen among
        the remaining commits only, see :meth:`_latest_per_file`.
        """
        out: dict[str, list[list[float]]] = {}
        for batch in chunked(dict.fromkeys(paths)):
            ranked = self._latest_per_file(
                repository_id, not_after=not_after, exclude_shas=exclude_shas
            )
            stmt = select(ranked.c.file_path, ranked.c.embedding).where(
                ranked.c.rnk == 1, ranked.c.file_path.in_(batch)
            )
            result = await session.execute(stmt)
            for path, vector in result.all():
                out.setdefault(path, []).append(list(vector))
        return out

    async def at_commit_by_path(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        sha: str,
        paths: Iterable[str],
    ) -> dict[str, list[list[float]]]:
        """Vectors recorded at commit *sha* for the given paths."""
        out: dict[str, list[list[float]]] = {}
        for batch in chunked(dict.fromkeys(paths)):
            stmt = (
                select(RepositoryFile.file_path, CodeEmbedding.embedding)
                .join(Commit, Commit.id == CodeEmbedding.commit_id)
                .join(RepositoryFile, RepositoryFile.id == CodeEmbedding.file_id)
                .where(
                    Commit.repository_id == repository_id,
                    Commit.sha == sha,
                    RepositoryFile.file_path.in_(batch),
                )
            )
            result = await session.execute(stmt)
            for path, vector in result.all():
                out.setdefault(path, []).append(list(vector))
        return out

    async def find_similar_files(
        self,
        session: AsyncSession,
        embedding: list[float],
        repository_id: uuid.UUID,
        exclude_file_id: uuid.UUID | None = None,
        limit: int = 10,
    ) -> list[tuple[uuid.UUID, str, float]]:
        """Rank the repository's files by similarity to *embedding*.

        A file's score is its best cosine over the units embedded at its newest
        revision. Returns ``(file_id, file_path, similarity)``, highest first.
        """
        ranked = self._latest_per_file(repository_id)
        stmt = select(ranked.c.file_id, ranked.c.file_path, ranked.c.embedding).where(
            ranked.c.rnk == 1
        )
        if exclude_file_id is not None:
            stmt = stmt.where(ranked.c.file_id != exclude_file_id)
        result = await session.execute(stmt)

        best: dict[uuid.UUID, tuple[str, float]] = {}
        for file_id, path, vector in result.all():
            if len(vector) != len(embedding):
                continue
            score = cosine_similarity(embedding, vector)
            if file_id not in best or score > best[file_id][1]:
                best[file_id] = (path, score)

        ranked_files = sorted(best.items(), key=lambda kv: (-kv[1][1], kv[1][0]))
        return [(fid, path, score) for fid, (path, score) in ranked_files[:limit]]

    # ── write ─────────────────────────────────────────────────────────────

    async def batch_insert(self, session: AsyncSession, rows: list[dict[str, Any]]) -> int:
        """Insert embeddings, skipping ``(file_id, commit_id, unit_name)`` duplicates.

        Returns the number of rows actually inserted.
        """
        inserted = 0
        for batch in chunked(rows):
            stmt = (
                insert(CodeEmbedding)
                .values(batch)
                .on_conflict_do_nothing(constraint="uq_code_embeddings_file_commit_unit")
            )
            result = await session.execute(stmt)
            inserted += result.rowcount
        return inserted
