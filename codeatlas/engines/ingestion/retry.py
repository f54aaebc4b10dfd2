"""Bounded, retried remote calls (parser and embedder round-trips)."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
import structlog

from codeatlas.core.config import RemoteCallConfig
from codeatlas.engines.ingestion.errors import describe_error

log = structlog.get_logger("codeatlas.engine")

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (httpx.HTTPError, asyncio.TimeoutError)

# client errors that will not change on retry
_PERMANENT_STATUS = frozenset({400, 401, 403, 404, 413, 422})


def _is_permanent(exc: BaseException) -> bool:
    return (
        isinstance(exc, httpx.HTTPStatusError)
        and exc.response.status_code in _PERMANENT_STATUS
    )


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    label: str = "",
) -> T:
    """Await ``fn()`` up to *attempts* times, sleeping ``base_delay * 2**n`` in between.

    Only :data:`RETRYABLE_ERRORS` are retried; after the last attempt the final
    error propagates.
    """
    last_exc: BaseException | None = None
    for attempt in range(attempts):
        try:
            return await fn()
        except RETRYABLE_ERRORS as exc:
            if _is_permanent(exc):
                raise
            last_exc = exc
            log.warning(
                "remote.retry",
                call=label,
                attempt=attempt + 1,
                max_attempts=attempts,
                error=describe_error(exc),
            )
        if attempt < attempts - 1:
            await asyncio.sleep(base_delay * (2**attempt))
    raise last_exc  # type: ignore[misc]


class RemoteCaller:
    """Apply the concurrency bound, per-call timeout and retry policy to remote calls.

    The semaphore is held per attempt, not across backoff sleeps.
    """

    def __init__(self, config: RemoteCallConfig | None = None) -> None:
        self._config = config or RemoteCallConfig()
        self._sem = asyncio.Semaphore(self._config.concurrency)

    async def call(self, fn: Callable[[], Awaitable[T]], label: str = "") -> T:
        async def attempt() -> T:
            async with self._sem:
                return await asyncio.wait_for(fn(), timeout=self._config.timeout)

        return await with_retry(
            attempt,
            attempts=self._config.attempts,
            base_delay=self._config.base_delay,
            label=label,
        )
