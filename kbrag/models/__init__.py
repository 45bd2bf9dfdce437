"""kbrag domain models - re-exports all public model classes.

    - knowledge.py - knowledge bases, documents, chunks, the status machine
    - rag.py       - vector records, retrieval options/results, ingestion summary
"""

from __future__ import annotations

from kbrag.models.knowledge import (
    Chunk,
    ChunkPosition,
    ChunkRecord,
    Document,
    DocumentStatus,
    KnowledgeBase,
    Visibility,
    can_transition,
    estimate_token_count,
    utc_now,
)
from kbrag.models.rag import (
    IndexStats,
    IngestionResult,
    RetrievalContext,
    RetrievalOptions,
    RetrievedChunk,
    SourceSummary,
    VectorFilter,
    VectorMatch,
    VectorMetadata,
    VectorRecord,
)

__all__ = [
    "Chunk",
    "ChunkPosition",
    "ChunkRecord",
    "Document",
    "DocumentStatus",
    "IndexStats",
    "IngestionResult",
    "KnowledgeBase",
    "RetrievalContext",
    "RetrievalOptions",
    "RetrievedChunk",
    "SourceSummary",
    "VectorFilter",
    "VectorMatch",
    "VectorMetadata",
    "VectorRecord",
    "Visibility",
    "can_transition",
    "estimate_token_count",
    "utc_now",
]
