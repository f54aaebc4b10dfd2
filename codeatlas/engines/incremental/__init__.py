"""Incremental update processor: webhook payloads and the queue-draining runner."""

from codeatlas.engines.incremental.payload import (
    PayloadError,
    PullRequestEvent,
    PushEvent,
    parse_pull_request,
    parse_push,
    repository_full_name,
)
from codeatlas.engines.incremental.runner import IncrementalRunner

__all__ = [
    "IncrementalRunner",
    "PayloadError",
    "PullRequestEvent",
    "PushEvent",
    "parse_pull_request",
    "parse_push",
    "repository_full_name",
]
