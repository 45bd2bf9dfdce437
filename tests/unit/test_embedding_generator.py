"""Unit tests for EmbeddingGenerator - validation, batching and ordering."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from kbrag.services.embedding_generator import EmbeddingGenerator
from kbrag.utils.errors import (
    EmbeddingError,
    EmptyInputError,
    InputTooLongError,
    MalformedResponseError,
)
from tests.conftest import EMBEDDING_DIM, hash_vector, make_embedding_provider


def _generator(provider=None, **kwargs) -> EmbeddingGenerator:
    return EmbeddingGenerator(
        provider=provider or make_embedding_provider(),
        dimension=EMBEDDING_DIM,
        **kwargs,
    )


class TestEmbed:
    @pytest.mark.asyncio
    async def test_returns_vector_of_dimension(self) -> None:
        vector = await _generator().embed("vacation policy")
        assert len(vector) == EMBEDDING_DIM
        assert vector == hash_vector("vacation policy")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "\n"])
    async def test_blank_text_rejected(self, text: str) -> None:
        provider = make_embedding_provider()
        with pytest.raises(EmptyInputError):
            await _generator(provider).embed(text)
        provider.embed.assert_not_called()

    @pytest.mark.asyncio
    async def test_text_over_limit_rejected(self) -> None:
        generator = _generator(max_input_chars=10)
        await generator.embed("x" * 10)
        with pytest.raises(InputTooLongError):
            await generator.embed("x" * 11)

    @pytest.mark.asyncio
    async def test_wrong_dimension_is_malformed(self) -> None:
        provider = make_embedding_provider(dim=EMBEDDING_DIM + 1)
        with pytest.raises(MalformedResponseError):
            await _generator(provider).embed("hello")

    @pytest.mark.asyncio
    async def test_wrong_count_is_malformed(self) -> None:
        provider = make_embedding_provider()
        provider.embed = AsyncMock(return_value=[])
        with pytest.raises(MalformedResponseError) as exc_info:
            await _generator(provider).embed("hello")
        assert isinstance(exc_info.value, EmbeddingError)
        assert exc_info.value.provider_name == "mock-embedding"


class TestEmbedBatch:
    @pytest.mark.asyncio
    async def test_empty_input_returns_empty(self) -> None:
        provider = make_embedding_provider()
        assert await _generator(provider).embed_batch([]) == []
        provider.embed.assert_not_called()

    @pytest.mark.asyncio
    async def test_windows_by_batch_size(self) -> None:
        provider = make_embedding_provider()
        texts = [f"text number {i}" for i in range(7)]
        await _generator(provider).embed_batch(texts, batch_size=3)

        calls = [call.args[0] for call in provider.embed.call_args_list]
        assert sorted(len(c) for c in calls) == [1, 3, 3]

    @pytest.mark.asyncio
    async def test_order_preserved_when_windows_finish_out_of_order(self) -> None:
        provider = make_embedding_provider()

        async def _slow_first(texts: list[str]) -> list[list[float]]:
            # The first window finishes last.
            if texts[0] == "text 0":
                await asyncio.sleep(0.05)
            return [hash_vector(t) for t in texts]

        provider.embed = AsyncMock(side_effect=_slow_first)
        texts = [f"text {i}" for i in range(10)]
        vectors = await _generator(provider).embed_batch(texts, batch_size=2)

        assert vectors == [hash_vector(t) for t in texts]

    @pytest.mark.asyncio
    async def test_any_window_failure_fails_batch(self) -> None:
        provider = make_embedding_provider()

        async def _fail_second(texts: list[str]) -> list[list[float]]:
            if texts[0] == "text 2":
                raise EmbeddingError("rate limited", provider_name="mock-embedding")
            return [hash_vector(t) for t in texts]

        provider.embed = AsyncMock(side_effect=_fail_second)
        with pytest.raises(EmbeddingError, match="rate limited"):
            await _generator(provider).embed_batch([f"text {i}" for i in range(6)], batch_size=2)

    @pytest.mark.asyncio
    async def test_first_failure_stops_queued_windows(self) -> None:
        provider = make_embedding_provider()
        provider.embed = AsyncMock(
            side_effect=EmbeddingError("quota exceeded", provider_name="mock-embedding")
        )

        with pytest.raises(EmbeddingError, match="quota exceeded"):
            await _generator(provider, max_concurrency=1).embed_batch(
                [f"text {i}" for i in range(10)], batch_size=1
            )
        assert provider.embed.call_count == 1

    @pytest.mark.asyncio
    async def test_failure_cancels_windows_in_flight(self) -> None:
        provider = make_embedding_provider()
        cancelled: list[str] = []

        async def _fail_first(texts: list[str]) -> list[list[float]]:
            if texts[0] == "text 0":
                await asyncio.sleep(0.01)
                raise EmbeddingError("server error", provider_name="mock-embedding")
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(texts[0])
                raise
            return [hash_vector(t) for t in texts]

        provider.embed = AsyncMock(side_effect=_fail_first)
        with pytest.raises(EmbeddingError, match="server error"):
            await asyncio.wait_for(
                _generator(provider, max_concurrency=3).embed_batch(
                    [f"text {i}" for i in range(6)], batch_size=1
                ),
                timeout=5,
            )

        assert sorted(cancelled) == ["text 1", "text 2"]
        assert provider.embed.call_count == 3

    @pytest.mark.asyncio
    async def test_invalid_item_rejected_before_any_call(self) -> None:
        provider = make_embedding_provider()
        with pytest.raises(EmptyInputError):
            await _generator(provider).embed_batch(["fine", "  ", "also fine"])
        provider.embed.assert_not_called()

    @pytest.mark.asyncio
    async def test_short_window_response_is_malformed(self) -> None:
        provider = make_embedding_provider()
        provider.embed = AsyncMock(return_value=[hash_vector("only one")])
        with pytest.raises(MalformedResponseError):
            await _generator(provider).embed_batch(["a", "b"], batch_size=2)

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self) -> None:
        provider = make_embedding_provider()
        in_flight = 0
        peak = 0

        async def _track(texts: list[str]) -> list[list[float]]:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return [hash_vector(t) for t in texts]

        provider.embed = AsyncMock(side_effect=_track)
        await _generator(provider, max_concurrency=2).embed_batch(
            [f"t {i}" for i in range(10)], batch_size=1
        )
        assert peak == 2
