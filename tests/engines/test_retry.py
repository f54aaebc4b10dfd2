"""Tests for with_retry and RemoteCaller."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from codeatlas.core.config import RemoteCallConfig
from codeatlas.engines.ingestion.errors import describe_error
from codeatlas.engines.ingestion.retry import RemoteCaller, with_retry


def _status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "http://parser.test/parse")
    return httpx.HTTPStatusError(
        "error", request=request, response=httpx.Response(code, request=request)
    )


class TestWithRetry:
    async def test_eventually_succeeds(self):
        fn = AsyncMock(side_effect=[httpx.ConnectError("down"), httpx.ReadTimeout("slow"), "ok"])
        with patch("asyncio.sleep", new_callable=AsyncMock) as sleep:
            assert await with_retry(fn, attempts=3, base_delay=0.5) == "ok"
        assert fn.await_count == 3
        assert [c[0][0] for c in sleep.call_args_list] == [0.5, 1.0]

    async def test_last_error_propagates(self):
        fn = AsyncMock(side_effect=_status_error(503))
        with patch("asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(httpx.HTTPStatusError):
                await with_retry(fn, attempts=3)
        assert fn.await_count == 3
        assert sleep.await_count == 2

    async def test_permanent_status_not_retried(self):
        fn = AsyncMock(side_effect=_status_error(422))
        with pytest.raises(httpx.HTTPStatusError):
            await with_retry(fn, attempts=3)
        assert fn.await_count == 1

    async def test_other_errors_not_retried(self):
        fn = AsyncMock(side_effect=KeyError("values"))
        with pytest.raises(KeyError):
            await with_retry(fn, attempts=3)
        assert fn.await_count == 1

    async def test_timeout_is_retried(self):
        fn = AsyncMock(side_effect=[asyncio.TimeoutError(), 7])
        with patch("asyncio.sleep", new_callable=AsyncMock):
            assert await with_retry(fn, attempts=2) == 7


class TestRemoteCaller:
    async def test_concurrency_bound(self):
        caller = RemoteCaller(RemoteCallConfig(concurrency=2, timeout=5, attempts=1))
        running = 0
        peak = 0

        async def work() -> int:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return 1

        results = await asyncio.gather(*(caller.call(work) for _ in range(6)))
        assert results == [1] * 6
        assert peak == 2

    async def test_timeout_counts_as_failure(self):
        caller = RemoteCaller(RemoteCallConfig(timeout=0.01, attempts=1))

        async def hang() -> None:
            await asyncio.sleep(1)

        with pytest.raises(asyncio.TimeoutError):
            await caller.call(hang, label="parse")

    def test_config_validation(self):
        with pytest.raises(ValueError, match="concurrency"):
            RemoteCallConfig(concurrency=0)
        with pytest.raises(ValueError, match="attempts"):
            RemoteCallConfig(attempts=0)


class TestDescribeError:
    def test_status_error_reduced_to_code(self):
        request = httpx.Request("POST", "https://embed.test/v1?key=hunter2")
        exc = httpx.HTTPStatusError(
            "boom ?key=hunter2", request=request, response=httpx.Response(503, request=request)
        )
        assert describe_error(exc) == "HTTPStatusError: HTTP 503"

    def test_transport_error_is_type_only(self):
        assert describe_error(httpx.ConnectError("https://x?key=hunter2")) == "ConnectError"

    def test_other_errors_keep_message(self):
        assert describe_error(KeyError("values")) == "KeyError: 'values'"
        assert describe_error(asyncio.TimeoutError()) == "TimeoutError"
