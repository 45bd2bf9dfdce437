"""Embedding generation with contract enforcement.

Wraps an :class:`~kbrag.interfaces.embedding_provider.IEmbeddingProvider`
and guarantees what callers downstream rely on: non-blank inputs under the
character ceiling, exactly one vector per input, every vector of the
configured dimension, and output order equal to input order.
"""

from __future__ import annotations

import asyncio

import structlog

from kbrag.interfaces.embedding_provider import IEmbeddingProvider
from kbrag.utils.concurrency import throttled_gather
from kbrag.utils.errors import (
    EmptyInputError,
    InputTooLongError,
    MalformedResponseError,
)

logger = structlog.get_logger(logger_name=__name__)


class EmbeddingGenerator:
    """Validating, batching front-end for an embedding provider.

    Parameters
    ----------
    provider:
        The embedding API adapter.
    dimension:
        Expected vector length; must match the vector index.
    max_input_chars:
        Per-text character ceiling (8000 for ``text-embedding-ada-002``).
    max_concurrency:
        Maximum batch windows in flight at once.
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        dimension: int,
        max_input_chars: int = 8000,
        max_concurrency: int = 4,
    ) -> None:
        self._provider = provider
        self._dimension = dimension
        self._max_input_chars = max_input_chars
        self._max_concurrency = max(1, max_concurrency)

    @property
    def dimension(self) -> int:
        return self._dimension

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> list[float]:
        """Embed a single text.

        Raises
        ------
        EmptyInputError
            If *text* is blank.
        InputTooLongError
            If *text* exceeds the character ceiling.
        MalformedResponseError
            If the provider does not return exactly one vector of the
            configured dimension.
        EmbeddingError
            If the provider call fails.
        """
        self._validate_input(text)
        vectors = await self._provider.embed([text])
        self._validate_response(vectors, expected=1)
        return list(vectors[0])

    async def embed_batch(self, texts: list[str], batch_size: int = 100) -> list[list[float]]:
        """Embed many texts, preserving input order.

        The input is split into windows of *batch_size*; each window is one
        provider call and windows run concurrently.  The first failing window
        fails the whole batch: windows not yet started are never sent and
        windows in flight are cancelled.
        """
        if not texts:
            return []
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        for text in texts:
            self._validate_input(text)

        windows = [texts[i : i + batch_size] for i in range(0, len(texts), batch_size)]
        semaphore = asyncio.Semaphore(self._max_concurrency)
        try:
            results = await throttled_gather(
                [self._embed_window(window) for window in windows],
                semaphore=semaphore,
                return_exceptions=False,
            )
        except Exception as exc:
            logger.warning(
                "embedding_batch_failed",
                windows=len(windows),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise

        vectors: list[list[float]] = []
        for result in results:
            vectors.extend(result)

        logger.debug(
            "embedding_batch_complete",
            texts=len(texts),
            windows=len(windows),
            provider=self._provider.get_provider_name(),
        )
        return vectors

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _embed_window(self, window: list[str]) -> list[list[float]]:
        vectors = await self._provider.embed(window)
        self._validate_response(vectors, expected=len(window))
        return [list(v) for v in vectors]

    def _validate_input(self, text: str) -> None:
        if not text or not text.strip():
            raise EmptyInputError("Text cannot be empty")
        if len(text) > self._max_input_chars:
            raise InputTooLongError(
                f"Text too long for embedding: {len(text)} chars "
                f"(limit {self._max_input_chars})"
            )

    def _validate_response(self, vectors: object, expected: int) -> None:
        provider_name = self._provider.get_provider_name()
        if not isinstance(vectors, list) or len(vectors) != expected:
            got = len(vectors) if isinstance(vectors, list) else type(vectors).__name__
            raise MalformedResponseError(
                f"Expected {expected} embedding(s), got {got}",
                provider_name=provider_name,
            )
        for vector in vectors:
            if len(vector) != self._dimension:
                raise MalformedResponseError(
                    f"Expected {self._dimension}-dim embedding, got {len(vector)}",
                    provider_name=provider_name,
                )

