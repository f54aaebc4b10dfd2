"""Parse GitHub ``push`` and ``pull_request`` webhook payloads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from codeatlas.engines.hosting.github_client import pull_request_fields

_ZERO_SHA = "0" * 40
_BRANCH_PREFIX = "refs/heads/"


class PayloadError(ValueError):
    """The payload lacks a field the event type requires."""


@dataclass(frozen=True)
class PushEvent:
    owner: str
    name: str
    commit_sha: str
    branch: str | None
    changed_files: list[str]


@dataclass(frozen=True)
class PullRequestEvent:
    owner: str
    name: str
    action: str
    # pull_requests columns, see pull_request_fields()
    fields: dict[str, Any]

    @property
    def number(self) -> int:
        return self.fields["pr_number"]

    @property
    def is_open(self) -> bool:
        return self.fields["state"] == "open"


def repository_full_name(payload: dict[str, Any]) -> str | None:
    """``owner/name`` of the repository an event belongs to."""
    repo = payload.get("repository") or {}
    full_name = repo.get("full_name")
    if full_name:
        return full_name
    owner = (repo.get("owner") or {}).get("login")
    if owner and repo.get("name"):
        return f"{owner}/{repo['name']}"
    return None


def _owner_and_name(payload: dict[str, Any]) -> tuple[str, str]:
    full_name = repository_full_name(payload)
    if not full_name or "/" not in full_name:
        raise PayloadError("payload has no repository")
    owner, name = full_name.split("/", 1)
    return owner, name


def parse_push(payload: dict[str, Any]) -> PushEvent | None:
    """Return the push to ingest, or None for a branch deletion.

    ``changed_files`` is the union of added, modified and removed paths over
    every commit of the push.
    """
    owner, name = _owner_and_name(payload)
    after = payload.get("after")
    if payload.get("deleted") or after == _ZERO_SHA:
        return None
    if not after:
        raise PayloadError("push payload has no 'after' sha")

    ref = payload.get("ref") or ""
    branch = ref[len(_BRANCH_PREFIX) :] if ref.startswith(_BRANCH_PREFIX) else None

    changed: set[str] = set()
    commits = list(payload.get("commits") or [])
    if payload.get("head_commit"):
        commits.append(payload["head_commit"])
    for commit in commits:
        for key in ("added", "modified", "removed"):
            changed.update(commit.get(key) or [])

    return PushEvent(
        owner=owner,
        name=name,
        commit_sha=after,
        branch=branch,
        changed_files=sorted(changed),
    )


def parse_pull_request(payload: dict[str, Any]) -> PullRequestEvent:
    owner, name = _owner_and_name(payload)
    pr = payload.get("pull_request")
    if not pr or "number" not in pr:
        raise PayloadError("pull_request payload has no pull request")
    return PullRequestEvent(
        owner=owner,
        name=name,
        action=payload.get("action") or "",
        fields=pull_request_fields(pr),
    )
