"""EmbeddingService: code embeddings and the file dependency graph."""

import uuid
from collections.abc import Collection, Iterable
from typing import Any

from sqlalchemy import Row
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.dao.code_embedding_dao import CodeEmbeddingDAO
from codeatlas.dao.commit_dao import CommitDAO
from codeatlas.dao.dependency_dao import DependencyDAO
from codeatlas.engines.embedding.similarity import mean_vector
from codeatlas.services import NotFoundError


class EmbeddingService:
    def __init__(
        self,
        embedding_dao: CodeEmbeddingDAO,
        dependency_dao: DependencyDAO,
        commit_dao: CommitDAO,
    ) -> None:
        self._embedding_dao = embedding_dao
        self._dependency_dao = dependency_dao
        self._commit_dao = commit_dao

    async def embedded_pairs(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        commit_ids: Iterable[uuid.UUID] | None = None,
    ) -> set[tuple[uuid.UUID, uuid.UUID]]:
        return await self._embedding_dao.embedded_pairs(session, repository_id, commit_ids)

    async def store(self, session: AsyncSession, rows: list[dict[str, Any]]) -> int:
        """Insert embeddings idempotently; returns how many were new."""
        return await self._embedding_dao.batch_insert(session, rows)

    async def revisions_for_file(self, session: AsyncSession, file_id: uuid.UUID) -> list[Row]:
        return await self._embedding_dao.revisions_for_file(session, file_id)

    async def revisions_for_repository(
        self, session: AsyncSession, repository_id: uuid.UUID
    ) -> list[Row]:
        return await self._embedding_dao.revisions_for_repository(session, repository_id)

    async def vectors_at_revision(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        sha: str | None,
        paths: Iterable[str],
    ) -> dict[str, list[list[float]]]:
        """Vectors recorded at *sha* where ingested, else each file's newest ones.

        Meant for a just-ingested push, whose commits are the newest. Use
        :meth:`vectors_for_pull_request` for versions that may be older.
        """
        paths = list(paths)
        vectors: dict[str, list[list[float]]] = {}
        if sha:
            vectors = await self._embedding_dao.at_commit_by_path(
                session, repository_id, sha, paths
            )
        missing = [p for p in paths if p not in vectors]
        if missing:
            latest = await self._embedding_dao.latest_by_path(session, repository_id, missing)
            vectors.update(latest)
        return vectors

    async def vectors_for_pull_request(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        head_sha: str | None,
        paths: Iterable[str],
        *,
        exclude_shas: Collection[str] = (),
    ) -> dict[str, list[list[float]]]:
        """Vectors of each path as the pull request's head commit sees it.

        A path the head commit touched uses the vectors recorded there; any
        other path uses its newest revision ordered no later than the head,
        ignoring *exclude_shas*. When the head was never ingested (fork PRs,
        unfetched refs) the PR's versions are unknown and nothing is returned.
        """
        if not head_sha:
            return {}
        head = await self._commit_dao.get_by_sha(session, repository_id, head_sha)
        if head is None:
            return {}
        paths = list(paths)
        vectors: dict[str, list[list[float]]] = {}
        if head.sha not in exclude_shas:
            vectors = await self._embedding_dao.at_commit_by_path(
                session, repository_id, head.sha, paths
            )
        missing = [p for p in paths if p not in vectors]
        if missing:
            earlier = await self._embedding_dao.latest_by_path(
                session,
                repository_id,
                missing,
                not_after=(head.committed_at, head.generation),
                exclude_shas=exclude_shas,
            )
            vectors.update(earlier)
        return vectors

    async def similar_files(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        file_path: str,
        file_id: uuid.UUID,
        limit: int = 10,
    ) -> list[tuple[uuid.UUID, str, float]]:
        """Files whose newest code is closest to the newest code of *file_id*.

        Raises :class:`NotFoundError` if the file has no embeddings yet.
        """
        latest = await self._embedding_dao.latest_by_path(session, repository_id, [file_path])
        if file_path not in latest:
            raise NotFoundError("file has no embeddings")
        query = mean_vector(latest[file_path])
        return await self._embedding_dao.find_similar_files(
            session, query, repository_id, exclude_file_id=file_id, limit=limit
        )

    async def replace_dependencies(
        self,
        session: AsyncSession,
        source_file_id: uuid.UUID,
        target_file_ids: list[uuid.UUID],
    ) -> int:
        return await self._dependency_dao.replace_for_source(
            session, source_file_id, target_file_ids
        )
