"""Tests for the embedding client and vector helpers."""

from __future__ import annotations

import json

import httpx
import pytest

from codeatlas.engines.embedding import (
    EmbeddingClient,
    EmbeddingDimensionError,
    clamp,
    cosine_similarity,
    mean_vector,
)


def _client(handler, dimension: int = 3) -> EmbeddingClient:
    return EmbeddingClient(
        "test-key",
        dimension=dimension,
        base_url="http://embed.test/v1beta",
        transport=httpx.MockTransport(handler),
    )


class TestEmbeddingClient:
    async def test_embed(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["key"] = request.headers["x-goog-api-key"]
            seen["query"] = str(request.url.query)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"embedding": {"values": [0.1, 0.2, 0.3]}})

        async with _client(handler) as client:
            vector = await client.embed("def f(): pass")

        assert vector == [0.1, 0.2, 0.3]
        assert seen["path"] == "/v1beta/models/text-embedding-004:embedContent"
        assert seen["key"] == "test-key"
        assert "test-key" not in seen["query"]
        assert seen["body"]["content"] == {"parts": [{"text": "def f(): pass"}]}

    async def test_wrong_dimension(self):
        handler = lambda r: httpx.Response(200, json={"embedding": {"values": [1.0]}})  # noqa: E731
        async with _client(handler) as client:
            with pytest.raises(EmbeddingDimensionError, match="expected 3"):
                await client.embed("x")

    async def test_http_error_propagates(self):
        async with _client(lambda r: httpx.Response(429)) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.embed("x")

    async def test_error_message_does_not_carry_key(self):
        async with _client(lambda r: httpx.Response(503)) as client:
            with pytest.raises(httpx.HTTPStatusError) as info:
                await client.embed("x")
        assert "test-key" not in str(info.value)

    async def test_non_string_rejected(self):
        async with _client(lambda r: httpx.Response(200)) as client:
            with pytest.raises(TypeError):
                await client.embed(None)

    def test_requires_api_key(self):
        with pytest.raises(ValueError, match="API key"):
            EmbeddingClient(None)


class TestVectorMath:
    def test_cosine(self):
        assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
        assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)

    def test_cosine_zero_vector(self):
        assert cosine_similarity([0, 0], [1, 0]) == 0.0

    def test_cosine_length_mismatch(self):
        with pytest.raises(ValueError, match="length mismatch"):
            cosine_similarity([1, 0], [1, 0, 0])

    def test_mean_vector(self):
        assert mean_vector([[1, 2], [3, 4]]) == [2, 3]
        with pytest.raises(ValueError):
            mean_vector([])
        with pytest.raises(ValueError):
            mean_vector([[1], [1, 2]])

    def test_clamp(self):
        assert clamp(-0.2) == 0.0
        assert clamp(1.3) == 1.0
        assert clamp(0.4) == 0.4
