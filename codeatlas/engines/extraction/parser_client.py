"""HTTP client for the function-extraction parser service."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from codeatlas.engines.extraction.models import FunctionUnit, ParseResult

log = structlog.get_logger("codeatlas.engine")


class ParserClient:
    """``POST {base_url}/parse`` with ``{code, language}``.

    The service answers ``{functions: [{name, code, startLine, endLine}],
    imports: [{module}]}``. Transport errors propagate; retrying is the
    caller's policy.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout, transport=transport
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ParserClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def parse(self, code: str, language: str) -> ParseResult:
        """Extract functions and imports from *code*.

        Whitespace-only input returns an empty result without a round-trip.
        Raises ``TypeError`` for non-string input.
        """
        if not isinstance(code, str) or not isinstance(language, str):
            raise TypeError("code and language must be str")
        if not code.strip():
            return ParseResult()

        resp = await self._client.post("/parse", json={"code": code, "language": language})
        resp.raise_for_status()
        return _to_result(resp.json())


def _to_result(data: dict[str, Any]) -> ParseResult:
    functions = [
        FunctionUnit(
            name=fn.get("name") or "anonymous",
            code=fn.get("code", ""),
            start_line=int(fn.get("startLine", 0)),
            end_line=int(fn.get("endLine", 0)),
        )
        for fn in data.get("functions") or []
    ]
    imports = [imp["module"] for imp in data.get("imports") or [] if imp.get("module")]
    return ParseResult(functions=functions, imports=imports)
