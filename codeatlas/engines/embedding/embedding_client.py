"""Gemini ``embedContent`` client producing fixed-size code vectors."""

from __future__ import annotations

import httpx
import structlog

log = structlog.get_logger("codeatlas.engine")

EMBEDDING_MODEL = "text-embedding-004"
_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class EmbeddingDimensionError(ValueError):
    """The embedder returned a vector of unexpected size."""


class EmbeddingClient:
    """Embed text with ``models/text-embedding-004``.

    Every returned vector has exactly *dimension* floats; anything else raises
    :class:`EmbeddingDimensionError`.
    """

    def __init__(
        self,
        api_key: str | None,
        dimension: int = 768,
        timeout: float = 30.0,
        model: str = EMBEDDING_MODEL,
        base_url: str = _BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("embedding API key is not configured")
        self._model = model
        self._dimension = dimension
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"x-goog-api-key": api_key},
            transport=transport,
        )

    @property
    def dimension(self) -> int:
        return self._dimension

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> EmbeddingClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def embed(self, text: str) -> list[float]:
        if not isinstance(text, str):
            raise TypeError("text must be str")
        resp = await self._client.post(
            f"/models/{self._model}:embedContent",
            json={
                "model": f"models/{self._model}",
                "content": {"parts": [{"text": text}]},
            },
        )
        resp.raise_for_status()
        values = resp.json()["embedding"]["values"]
        if len(values) != self._dimension:
            raise EmbeddingDimensionError(
                f"expected {self._dimension} dimensions, got {len(values)}"
            )
        return [float(v) for v in values]
