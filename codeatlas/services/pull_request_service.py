"""PullRequestService: mirrored pull requests and their changed-file sets."""

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.dao.pull_request_dao import PullRequestDAO
from codeatlas.models.pull_request import PullRequest

log = structlog.get_logger("codeatlas.service")


class PullRequestService:
    def __init__(self, pull_request_dao: PullRequestDAO) -> None:
        self._pull_request_dao = pull_request_dao

    async def list_open_with_files(
        self, session: AsyncSession, repository_id: uuid.UUID
    ) -> list[tuple[PullRequest, list[str]]]:
        return await self._pull_request_dao.list_open_with_files(session, repository_id)

    async def sync(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        *,
        pr_number: int,
        state: str,
        title: str | None,
        author_login: str | None,
        head_sha: str | None,
        base_branch: str | None,
        files: list[str] | None,
    ) -> uuid.UUID:
        """Upsert one PR; its file set is replaced when *files* is given."""
        pr_id = await self._pull_request_dao.upsert(
            session,
            repository_id=repository_id,
            pr_number=pr_number,
            state=state,
            title=title,
            author_login=author_login,
            head_sha=head_sha,
            base_branch=base_branch,
        )
        if files is not None:
            await self._pull_request_dao.replace_files(session, pr_id, files)
        return pr_id

    async def close_missing(
        self, session: AsyncSession, repository_id: uuid.UUID, open_numbers: list[int]
    ) -> int:
        closed = await self._pull_request_dao.close_missing(session, repository_id, open_numbers)
        if closed:
            log.info("pull_requests.closed_missing", repository_id=str(repository_id), count=closed)
        return closed

    async def store_risk_scores(
        self, session: AsyncSession, repository_id: uuid.UUID, scores: dict[int, float]
    ) -> None:
        await self._pull_request_dao.update_risk_scores(session, repository_id, scores)
