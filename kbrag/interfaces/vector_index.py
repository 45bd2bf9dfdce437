"""Abstract base class for vector-index providers.

The index owns no business logic beyond shape translation: it stores chunk
vectors with their metadata, answers top-K similarity queries scoped by a
single equality filter, and deletes vectors by filter.

Tenant isolation rests on the filter: a query filtered to
``knowledge_base_id = A`` must never return a vector whose metadata says
otherwise, however well it scores.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from kbrag.models.rag import IndexStats, VectorFilter, VectorMatch, VectorRecord


# Concrete implementation: ChromaDBVectorIndex (kbrag/providers/vector_store/)
class IVectorIndex(ABC):
    """Contract for the nearest-neighbour index behind the RAG pipeline."""

    @abstractmethod
    async def upsert(self, records: list[VectorRecord]) -> list[str]:
        """Insert or replace *records*; return their IDs in input order.

        Empty input is a no-op returning ``[]``.  Oversized ``content``
        metadata is truncated, never rejected.

        Raises
        ------
        kbrag.utils.errors.VectorStoreError
            If the index rejects the write or a vector has the wrong length.
        """

    @abstractmethod
    async def query(
        self,
        vector: list[float],
        filter: VectorFilter,
        top_k: int = 10,
        min_score: float = 0.7,
    ) -> list[VectorMatch]:
        """Return up to *top_k* matches with ``score >= min_score``.

        Results are sorted by descending score and restricted to vectors whose
        metadata satisfies *filter*.

        Raises
        ------
        kbrag.utils.errors.VectorStoreError
            If the query fails.
        """

    @abstractmethod
    async def delete_by_filter(self, filter: VectorFilter) -> int:
        """Best-effort delete of every vector matching *filter*.

        Never raises: failures are logged and ``0`` is returned so callers
        can continue with metadata cleanup.

        Returns
        -------
        int
            Number of vectors deleted, when the backend reports it.
        """

    @abstractmethod
    async def get_stats(self) -> IndexStats:
        """Return the vector count and configured dimension."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"chromadb"``."""
