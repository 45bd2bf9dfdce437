"""Vector-index and retrieval data models.

Defines Pydantic v2 models for the records exchanged with the vector index,
the options and result of a retrieval call, and the summary returned by an
ingestion run.  All models are frozen.

Retrieval overview:

    1. The query is embedded with the same model used at ingestion.
    2. The vector index returns the nearest chunks of ONE knowledge base.
    3. Near-duplicate passages are dropped (word-set Jaccard similarity).
    4. Survivors are joined with their chunk rows and packed into a token
       budget, highest similarity first.
    5. The resulting :class:`RetrievalContext` is rendered into a prompt by
       :func:`kbrag.services.retrieval_service.build_rag_system_prompt`.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from kbrag.models.knowledge import ChunkPosition


# ---------------------------------------------------------------------------
# Vector index records
# ---------------------------------------------------------------------------
class VectorMetadata(BaseModel):
    """Metadata stored alongside every chunk vector."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    knowledge_base_id: str
    chunk_index: int = Field(ge=0)
    # May be truncated by the index adapter; the chunk row keeps the full text.
    content: str
    file_name: str
    token_count: int = Field(ge=0)
    created_at: str = Field(description="ISO-8601 timestamp of the upsert.")


class VectorRecord(BaseModel):
    """One vector to upsert, keyed by a generated UUID."""

    model_config = ConfigDict(frozen=True)

    id: str
    vector: list[float]
    metadata: VectorMetadata


class VectorFilter(BaseModel):
    """Equality constraint on a single metadata field."""

    model_config = ConfigDict(frozen=True)

    field: str
    value: str


class VectorMatch(BaseModel):
    """A query hit with its cosine similarity score."""

    model_config = ConfigDict(frozen=True)

    id: str
    score: float
    metadata: VectorMetadata


class IndexStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_vectors: int = Field(default=0, ge=0)
    dimension: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------
class RetrievalOptions(BaseModel):
    """Validated knobs for a single retrieval call."""

    model_config = ConfigDict(frozen=True)

    query: str = Field(min_length=1, max_length=1000)
    top_k: int = Field(default=10, ge=1, le=50)
    min_score: float = Field(default=0.7, ge=0.0, le=1.0)
    max_tokens: int = Field(default=4000, ge=1)
    diversity_threshold: float = Field(default=0.85, gt=0.0, le=1.0)


class RetrievedChunk(BaseModel):
    """A chunk admitted into a retrieval context."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Chunk row identifier.")
    vector_id: str
    document_id: str
    content: str
    file_name: str
    chunk_index: int = Field(ge=0)
    similarity: float
    token_count: int = Field(ge=0)
    position: ChunkPosition


class SourceSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    file_name: str
    chunks: int = Field(ge=1)


class RetrievalContext(BaseModel):
    """Passages selected for one query, with per-file attribution."""

    model_config = ConfigDict(frozen=True)

    query: str
    chunks: list[RetrievedChunk] = Field(default_factory=list)
    total_tokens: int = Field(default=0, ge=0)
    sources: list[SourceSummary] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------
class IngestionResult(BaseModel):
    """Summary of a single document processing run."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    status: str
    chunks_created: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    ingestion_time: float = Field(default=0.0, ge=0.0)
    error_message: str | None = None
