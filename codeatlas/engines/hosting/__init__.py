"""Hosting-platform client: GitHub REST (webhooks, commit statuses, pull requests)."""

from codeatlas.engines.hosting.github_client import (
    STATUS_CONTEXT,
    WEBHOOK_EVENTS,
    GitHubClient,
    RateLimitError,
    pull_request_fields,
)

__all__ = [
    "STATUS_CONTEXT",
    "WEBHOOK_EVENTS",
    "GitHubClient",
    "RateLimitError",
    "pull_request_fields",
]
