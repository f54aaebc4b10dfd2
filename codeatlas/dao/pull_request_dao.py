"""PullRequestDAO: pull_requests and pr_files_changed operations."""

import uuid

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.dao.base import BaseDAO, chunked
from codeatlas.models.pull_request import PrFileChanged, PullRequest


class PullRequestDAO(BaseDAO[PullRequest]):
    model = PullRequest

    # ── read ──────────────────────────────────────────────────────────────

    async def get_by_number(
        self, session: AsyncSession, repository_id: uuid.UUID, pr_number: int
    ) -> PullRequest | None:
        stmt = select(PullRequest).where(
            PullRequest.repository_id == repository_id, PullRequest.pr_number == pr_number
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    async def list_open_with_files(
        self, session: AsyncSession, repository_id: uuid.UUID
    ) -> list[tuple[PullRequest, list[str]]]:
        """Open PRs of the repository each paired with its changed paths."""
        stmt = (
            select(PullRequest)
            .where(PullRequest.repository_id == repository_id, PullRequest.state == "open")
            .order_by(PullRequest.pr_number)
        )
        prs = list((await session.execute(stmt)).scalars().all())
        if not prs:
            return []

        files_stmt = select(PrFileChanged.pull_request_id, PrFileChanged.file_path).where(
            PrFileChanged.pull_request_id.in_([pr.id for pr in prs])
        )
        by_pr: dict[uuid.UUID, list[str]] = {}
        for pr_id, path in (await session.execute(files_stmt)).all():
            by_pr.setdefault(pr_id, []).append(path)
        return [(pr, sorted(by_pr.get(pr.id, []))) for pr in prs]

    # ── write ─────────────────────────────────────────────────────────────

    async def upsert(
        self,
        session: AsyncSession,
        *,
        repository_id: uuid.UUID,
        pr_number: int,
        state: str,
        title: str | None,
        author_login: str | None,
        head_sha: str | None,
        base_branch: str | None,
    ) -> uuid.UUID:
        values = {
            "state": state,
            "title": title,
            "author_login": author_login,
            "head_sha": head_sha,
            "base_branch": base_branch,
        }
        stmt = (
            insert(PullRequest)
            .values(repository_id=repository_id, pr_number=pr_number, **values)
            .on_conflict_do_update(
                constraint="uq_pull_requests_repository_number",
                set_={**values, "updated_at": func.now()},
            )
            .returning(PullRequest.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    async def replace_files(
        self, session: AsyncSession, pull_request_id: uuid.UUID, paths: list[str]
    ) -> None:
        await session.execute(
            delete(PrFileChanged).where(PrFileChanged.pull_request_id == pull_request_id)
        )
        for batch in chunked(dict.fromkeys(paths)):
            stmt = insert(PrFileChanged).values(
                [{"pull_request_id": pull_request_id, "file_path": p} for p in batch]
            )
            await session.execute(stmt)

    async def update_risk_scores(
        self, session: AsyncSession, repository_id: uuid.UUID, scores: dict[int, float]
    ) -> None:
        for pr_number, score in scores.items():
            stmt = (
                update(PullRequest)
                .where(
                    PullRequest.repository_id == repository_id,
                    PullRequest.pr_number == pr_number,
                )
                .values(risk_score=score, updated_at=func.now())
            )
            await session.execute(stmt)

    async def close_missing(
        self, session: AsyncSession, repository_id: uuid.UUID, open_numbers: list[int]
    ) -> int:
        """Mark stored open PRs that the platform no longer lists as closed."""
        stmt = (
            update(PullRequest)
            .where(
                PullRequest.repository_id == repository_id,
                PullRequest.state == "open",
                PullRequest.pr_number.not_in(open_numbers),
            )
            .values(state="closed", updated_at=func.now())
        )
        result = await session.execute(stmt)
        return result.rowcount
