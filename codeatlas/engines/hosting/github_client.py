"""Async GitHub API client: pagination, rate-limit handling, retries, webhooks, statuses."""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import AsyncGenerator
from typing import Any

import httpx
import structlog

log = structlog.get_logger("codeatlas.engine")

_NEXT_LINK_RE = re.compile(r'<([^>]+)>;\s*rel="next"')

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds

WEBHOOK_EVENTS = ("push", "pull_request")
STATUS_CONTEXT = "codeatlas/conflict-risk"


class RateLimitError(Exception):
    """Raised when GitHub rate limit is exhausted and we need to wait."""

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(f"rate limit exceeded, retry after {retry_after}s")


class GitHubClient:
    """Thin async wrapper around the GitHub REST API."""

    def __init__(
        self,
        token: str | None = None,
        base_url: str = "https://api.github.com",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"token {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url, headers=headers, timeout=30.0, transport=transport
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── generic ────────────────────────────────────────────────────────────

    async def get_paginated(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        max_pages: int = 10,
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Yield JSON items, following ``Link: <...>; rel="next"`` up to *max_pages*."""
        url: str | None = path
        params = dict(params or {})
        params.setdefault("per_page", 100)
        page = 0

        while url and page < max_pages:
            response = await self._request_with_retry(
                "GET", url, params=params if page == 0 else None
            )
            await self._check_rate_limit(response)

            data = response.json()
            if isinstance(data, list):
                for item in data:
                    yield item
            else:
                yield data

            url = self._parse_next_link(response.headers.get("Link", ""))
            page += 1

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        response = await self._request_with_retry("GET", path, params=params)
        await self._check_rate_limit(response)
        return response.json()

    async def post(self, path: str, payload: dict[str, Any]) -> Any:
        response = await self._request_with_retry("POST", path, json=payload)
        await self._check_rate_limit(response)
        return response.json()

    # ── webhooks ───────────────────────────────────────────────────────────

    async def list_hooks(self, owner: str, repo: str) -> list[dict[str, Any]]:
        return [hook async for hook in self.get_paginated(f"/repos/{owner}/{repo}/hooks")]

    async def register_webhook(
        self, owner: str, repo: str, url: str, secret: str
    ) -> dict[str, Any]:
        """Create the push/pull_request hook unless one with *url* already exists."""
        for hook in await self.list_hooks(owner, repo):
            if hook.get("config", {}).get("url") == url:
                log.info("github.webhook_exists", owner=owner, repo=repo, hook_id=hook.get("id"))
                return hook
        hook = await self.post(
            f"/repos/{owner}/{repo}/hooks",
            {
                "name": "web",
                "active": True,
                "events": list(WEBHOOK_EVENTS),
                "config": {"url": url, "content_type": "json", "secret": secret},
            },
        )
        log.info("github.webhook_created", owner=owner, repo=repo, hook_id=hook.get("id"))
        return hook

    # ── statuses / pull requests ───────────────────────────────────────────

    async def post_commit_status(
        self,
        owner: str,
        repo: str,
        sha: str,
        *,
        state: str,
        description: str,
        context: str = STATUS_CONTEXT,
        target_url: str | None = None,
    ) -> dict[str, Any]:
        """Set a commit status; *state* is one of error/failure/pending/success."""
        payload: dict[str, Any] = {
            "state": state,
            "description": description[:140],
            "context": context,
        }
        if target_url:
            payload["target_url"] = target_url
        return await self.post(f"/repos/{owner}/{repo}/statuses/{sha}", payload)

    async def list_open_pull_requests(self, owner: str, repo: str) -> list[dict[str, Any]]:
        return [
            pr
            async for pr in self.get_paginated(
                f"/repos/{owner}/{repo}/pulls", {"state": "open"}
            )
        ]

    async def list_pull_request_files(self, owner: str, repo: str, number: int) -> list[str]:
        """Paths changed by PR *number* (the API caps this listing at 3000 files)."""
        return [
            f["filename"]
            async for f in self.get_paginated(
                f"/repos/{owner}/{repo}/pulls/{number}/files", max_pages=30
            )
        ]

    # ── internal ───────────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send with exponential backoff on 5xx, 403 rate-limit, and timeout errors."""
        last_exc: Exception | None = None
        for attempt in range(_MAX_RETRIES):
            try:
                resp = await self._client.request(method, url, params=params, json=json)

                if resp.status_code == 403 and self._is_rate_limited(resp):
                    wait = self._get_rate_limit_wait(resp)
                    log.warning(
                        "github.rate_limit",
                        url=url,
                        wait_seconds=wait,
                        attempt=attempt + 1,
                        max_retries=_MAX_RETRIES,
                    )
                    await asyncio.sleep(wait)
                    last_exc = RateLimitError(wait)
                    continue

                if resp.status_code < 500:
                    resp.raise_for_status()
                    return resp

                log.warning(
                    "github.server_error",
                    url=url,
                    status=resp.status_code,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = httpx.HTTPStatusError(
                    f"{resp.status_code}", request=resp.request, response=resp
                )
            except httpx.TimeoutException as exc:
                log.warning(
                    "github.timeout", url=url, attempt=attempt + 1, max_retries=_MAX_RETRIES
                )
                last_exc = exc

            if attempt < _MAX_RETRIES - 1:
                await asyncio.sleep(_RETRY_BASE_DELAY * (2**attempt))

        raise last_exc  # type: ignore[misc]

    async def _check_rate_limit(self, response: httpx.Response) -> None:
        remaining = self._parse_header_int(response.headers.get("X-RateLimit-Remaining"))
        if remaining == 0:
            wait = self._get_rate_limit_wait(response)
            log.warning("github.rate_limit_wait", wait_seconds=wait)
            await asyncio.sleep(wait)

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        remaining = GitHubClient._parse_header_int(response.headers.get("X-RateLimit-Remaining"))
        if remaining is not None:
            return remaining == 0
        # secondary (abuse) limits only send Retry-After
        return "Retry-After" in response.headers

    @staticmethod
    def _get_rate_limit_wait(response: httpx.Response) -> int:
        retry_after = GitHubClient._parse_header_int(response.headers.get("Retry-After"))
        if retry_after is not None:
            return max(retry_after, 1)
        reset_ts = GitHubClient._parse_header_int(response.headers.get("X-RateLimit-Reset"))
        if reset_ts is not None:
            return max(reset_ts - int(time.time()), 1)
        return 60

    @staticmethod
    def _parse_header_int(value: str | None) -> int | None:
        if value is None:
            return None
        try:
            return int(value)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _parse_next_link(link_header: str) -> str | None:
        match = _NEXT_LINK_RE.search(link_header)
        return match.group(1) if match else None


def pull_request_fields(pr: dict[str, Any]) -> dict[str, Any]:
    """Columns of a ``pull_requests`` row from a GitHub pull request object."""
    state = pr.get("state") or "open"
    if state == "closed" and pr.get("merged_at"):
        state = "merged"
    return {
        "pr_number": int(pr["number"]),
        "state": state,
        "title": pr.get("title"),
        "author_login": (pr.get("user") or {}).get("login"),
        "head_sha": (pr.get("head") or {}).get("sha"),
        "base_branch": (pr.get("base") or {}).get("ref"),
    }
