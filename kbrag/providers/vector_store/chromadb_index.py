"""ChromaDB vector index adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IVectorIndex`.
Uses cosine distance; similarity scores are reported as ``1 - distance``.
Fully local, no external service required.
"""

from __future__ import annotations

import os
from typing import Any

# Disable ChromaDB's anonymous telemetry before importing chromadb.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import chromadb
import structlog

from kbrag.interfaces.vector_index import IVectorIndex
from kbrag.models.rag import IndexStats, VectorFilter, VectorMatch, VectorMetadata, VectorRecord
from kbrag.utils.errors import ConfigurationError, VectorStoreError

logger = structlog.get_logger(logger_name=__name__)


class ChromaDBVectorIndex(IVectorIndex):
    """Vector index backed by a ChromaDB collection with local persistence.

    All vectors are pre-computed by the embedding generator; the collection
    is opened with ``embedding_function=None`` so ChromaDB never loads a
    model of its own.

    Parameters
    ----------
    dimension:
        Length every stored vector must have.
    persist_directory:
        On-disk location of the ChromaDB database.
    collection_name:
        Collection holding every knowledge base's vectors.
    metadata_content_limit:
        Maximum characters of chunk text stored in vector metadata.
    native_filtered_delete:
        When ``True`` deletes use ``collection.delete(where=...)``; when
        ``False`` matching IDs are resolved first and deleted by ID.
    client:
        Pre-built ChromaDB client; a ``PersistentClient`` is created when
        omitted.
    """

    def __init__(
        self,
        dimension: int,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "kbrag_chunks",
        metadata_content_limit: int = 40000,
        native_filtered_delete: bool = True,
        client: Any | None = None,
    ) -> None:
        self._dimension = dimension
        self._metadata_content_limit = metadata_content_limit
        self._native_filtered_delete = native_filtered_delete
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        self._collection = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
            embedding_function=None,
        )
        self._validate_embedding_dimensions()

    # ------------------------------------------------------------------
    # Startup validation
    # ------------------------------------------------------------------

    def _validate_embedding_dimensions(self) -> None:
        """Verify the configured dimension matches vectors already stored.

        Peeks at a single stored vector.  A mismatch means every query would
        compare incompatible vectors, so construction fails.
        """
        if self._collection.count() == 0:
            return

        sample = self._collection.peek(limit=1)
        embeddings = sample.get("embeddings") if sample else None
        if embeddings is None or len(embeddings) == 0:
            return

        stored_dim = len(embeddings[0])
        if stored_dim != self._dimension:
            logger.error(
                "embedding_dimension_mismatch",
                stored_dim=stored_dim,
                expected_dim=self._dimension,
            )
            raise ConfigurationError(
                message=(
                    f"Embedding dimension mismatch: index has {stored_dim}-dim vectors "
                    f"but {self._dimension} is configured. "
                    f"Set EMBEDDING_DIMENSION to the model used to build the index."
                ),
                provider_name=self.get_provider_name(),
            )
        logger.info("embedding_dimension_validated", dimension=stored_dim)

    # ------------------------------------------------------------------
    # IVectorIndex implementation
    # ------------------------------------------------------------------

    async def upsert(self, records: list[VectorRecord]) -> list[str]:
        if not records:
            return []

        for record in records:
            if len(record.vector) != self._dimension:
                raise VectorStoreError(
                    message=(
                        f"Vector {record.id} has {len(record.vector)} dimensions, "
                        f"expected {self._dimension}"
                    ),
                    provider_name=self.get_provider_name(),
                )

        ids = [r.id for r in records]
        metadatas = [self._to_metadata(r.metadata) for r in records]
        try:
            self._collection.upsert(
                ids=ids,
                embeddings=[r.vector for r in records],
                metadatas=metadatas,
                documents=[m["content"] for m in metadatas],
            )
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("chromadb_upsert", count=len(ids))
        return ids

    async def query(
        self,
        vector: list[float],
        filter: VectorFilter,
        top_k: int = 10,
        min_score: float = 0.7,
    ) -> list[VectorMatch]:
        try:
            count = self._collection.count()
            if count == 0:
                return []

            results = self._collection.query(
                query_embeddings=[vector],
                n_results=min(top_k, count),
                where={filter.field: {"$eq": filter.value}},
                include=["metadatas", "distances"],
            )
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = results["ids"][0] if results["ids"] else []
        metadatas = results["metadatas"][0] if results["metadatas"] else [{}] * len(ids)
        distances = results["distances"][0] if results["distances"] else [1.0] * len(ids)

        matches: list[VectorMatch] = []
        for vector_id, meta, distance in zip(ids, metadatas, distances, strict=True):
            if meta.get(filter.field) != filter.value:
                # The index must never leak across tenants; drop and report.
                logger.error(
                    "vector_filter_violation",
                    vector_id=vector_id,
                    field=filter.field,
                    expected=filter.value,
                    actual=meta.get(filter.field),
                )
                continue
            score = 1.0 - float(distance)
            if score < min_score:
                continue
            matches.append(VectorMatch(id=vector_id, score=score, metadata=VectorMetadata(**meta)))

        matches.sort(key=lambda m: m.score, reverse=True)
        logger.info(
            "chromadb_query",
            raw_results=len(ids),
            results_count=len(matches),
            top_score=matches[0].score if matches else 0.0,
        )
        return matches

    async def delete_by_filter(self, filter: VectorFilter) -> int:
        where = {filter.field: {"$eq": filter.value}}
        try:
            existing = self._collection.get(where=where, include=["metadatas"])
            ids = list(existing["ids"] or [])
            if ids:
                if self._native_filtered_delete:
                    self._collection.delete(where=where)
                else:
                    self._collection.delete(ids=ids)
        except Exception as exc:
            logger.warning(
                "chromadb_delete_failed",
                field=filter.field,
                value=filter.value,
                error=str(exc),
            )
            return 0

        logger.info(
            "chromadb_delete_by_filter",
            field=filter.field,
            value=filter.value,
            deleted_count=len(ids),
        )
        return len(ids)

    async def get_stats(self) -> IndexStats:
        try:
            total = self._collection.count()
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB get_stats failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return IndexStats(total_vectors=total, dimension=self._dimension)

    def get_provider_name(self) -> str:
        return "chromadb"

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _to_metadata(self, metadata: VectorMetadata) -> dict[str, Any]:
        """Flatten metadata for ChromaDB, truncating the stored content."""
        meta = metadata.model_dump()
        content = meta["content"]
        if len(content) > self._metadata_content_limit:
            meta["content"] = content[: self._metadata_content_limit]
        return meta
