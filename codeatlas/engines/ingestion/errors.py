"""Pipeline exceptions and per-unit failure records."""

from __future__ import annotations

from dataclasses import asdict, dataclass

import httpx


def describe_error(exc: BaseException) -> str:
    """Short, persistable description of *exc*.

    HTTP errors are reduced to their type and status code: httpx messages carry
    the full request URL, which must not reach logs or the database.
    """
    name = type(exc).__name__
    if isinstance(exc, httpx.HTTPStatusError):
        return f"{name}: HTTP {exc.response.status_code}"
    if isinstance(exc, httpx.HTTPError):
        return name
    message = str(exc)
    return f"{name}: {message}" if message else name


class PipelineError(Exception):
    """Base class for errors that abort an ingestion run."""


class CloneError(PipelineError):
    """The clone could not be materialized or refreshed."""


class PersistenceError(PipelineError):
    """A database write failed mid-run."""


class PipelineCancelledError(PipelineError):
    """The run was cancelled through ``IngestionOrchestrator.cancel``."""


@dataclass(frozen=True)
class UnitFailure:
    """One unit of work that was skipped after exhausting its retries.

    Not an exception: failures accumulate on the run and are persisted in
    ``repositories.failed_units`` when it finishes.
    """

    stage: str
    error: str
    commit_sha: str | None = None
    file_path: str | None = None
    unit: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)
