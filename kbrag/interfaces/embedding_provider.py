"""Abstract base class for text-embedding service providers.

A provider is the thin transport to an embedding API: text in, vectors out.
Input validation, batching windows and dimension checks live one layer up in
:class:`~kbrag.services.embedding_generator.EmbeddingGenerator`, so every
provider gets the same contract enforcement.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: OpenAIEmbeddingProvider (kbrag/providers/embedding/)
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by ingestion and retrieval."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for *texts* in one provider call.

        Parameters
        ----------
        texts:
            One or more non-blank strings.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.

        Raises
        ------
        kbrag.utils.errors.EmbeddingError
            If the embedding API call fails.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the vectors this provider produces.

        Must match the dimension configured for the vector index, e.g.
        ``1536`` for ``text-embedding-ada-002``.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""
