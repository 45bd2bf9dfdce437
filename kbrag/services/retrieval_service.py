"""Retrieval engine: query embedding, similarity search, diversity and packing.

Turns a user query into a :class:`~kbrag.models.rag.RetrievalContext` for
one knowledge base, then renders that context into an LLM system prompt.

The data flow for :meth:`RetrievalService.retrieve`:

  1. EMBED     -- embed the query with the ingestion model, optionally
                  through a read-through cache.
  2. SEARCH    -- ask the vector index for ``2 * top_k`` candidates scoped
                  to the knowledge base and above ``min_score``.
  3. DIVERSIFY -- walk candidates best-first and drop any whose word-set
                  Jaccard similarity to an already kept candidate reaches
                  ``diversity_threshold``.
  4. JOIN      -- fetch chunk rows by vector id; vectors without a row are
                  dropped.
  5. PACK      -- highest similarity first, admit chunks while the running
                  token estimate stays within ``max_tokens``.
  6. ATTRIBUTE -- count admitted chunks per file.
"""

from __future__ import annotations

import hashlib
from collections import Counter
from collections.abc import Sequence
from typing import TYPE_CHECKING

import structlog

from kbrag.models.rag import (
    RetrievalContext,
    RetrievalOptions,
    RetrievedChunk,
    SourceSummary,
    VectorFilter,
    VectorMatch,
)
from kbrag.utils.errors import KnowledgeBaseError, RetrievalError
from kbrag.utils.logging import get_logger

if TYPE_CHECKING:
    from kbrag.interfaces.cache_provider import ICacheProvider
    from kbrag.interfaces.metadata_store import IMetadataStore
    from kbrag.interfaces.vector_index import IVectorIndex
    from kbrag.services.embedding_generator import EmbeddingGenerator

logger: structlog.BoundLogger = get_logger(__name__)

_RAG_INSTRUCTIONS = """\
INSTRUCTIONS:
- Use the provided context to answer questions accurately
- Cite sources by mentioning the document name when referencing specific information
- If the context doesn't contain relevant information for the user's question, clearly state this
- Combine information from multiple sources when appropriate
- Maintain the conversational tone while being informative"""


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def content_similarity(first: str, second: str) -> float:
    """Jaccard similarity of the lowercase whitespace-delimited word sets."""
    words_a = set(first.lower().split())
    words_b = set(second.lower().split())
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def apply_diversity_filter(matches: Sequence[VectorMatch], threshold: float) -> list[VectorMatch]:
    """Keep matches whose content is less than *threshold* similar to every kept one.

    *matches* are expected best-first; the first is always kept.
    """
    kept: list[VectorMatch] = []
    for candidate in matches:
        if all(
            content_similarity(candidate.metadata.content, chosen.metadata.content) < threshold
            for chosen in kept
        ):
            kept.append(candidate)
    return kept


def apply_token_limit(chunks: Sequence[RetrievedChunk], max_tokens: int) -> list[RetrievedChunk]:
    """Greedy packing by descending similarity.

    A chunk that would push the total past *max_tokens* is skipped; smaller
    chunks further down the list may still fit.
    """
    admitted: list[RetrievedChunk] = []
    total = 0
    for chunk in sorted(chunks, key=lambda c: c.similarity, reverse=True):
        if total + chunk.token_count <= max_tokens:
            admitted.append(chunk)
            total += chunk.token_count
    return admitted


def summarize_sources(chunks: Sequence[RetrievedChunk]) -> list[SourceSummary]:
    """Chunk counts per file, most-cited first (ties keep first-seen order)."""
    counts = Counter(c.file_name for c in chunks)
    return [
        SourceSummary(file_name=name, chunks=count)
        for name, count in sorted(counts.items(), key=lambda item: item[1], reverse=True)
    ]


def build_rag_system_prompt(base_prompt: str, context: RetrievalContext, user_query: str) -> str:
    """Render *context* into a system prompt appended to *base_prompt*.

    Returns *base_prompt* unchanged when the context has no chunks.
    """
    if not context.chunks:
        return base_prompt

    context_text = "\n\n".join(
        f'[Source {i}] From "{chunk.file_name}" '
        f"(similarity: {chunk.similarity * 100:.1f}%):\n{chunk.content}"
        for i, chunk in enumerate(context.chunks, start=1)
    )
    sources_list = "\n".join(
        f"- {source.file_name} ({source.chunks} {'chunk' if source.chunks == 1 else 'chunks'})"
        for source in context.sources
    )

    return (
        f"{base_prompt}\n\n"
        "You have access to relevant context from the user's knowledge base. "
        "Use this information to provide accurate, specific answers.\n\n"
        f"RELEVANT CONTEXT:\n{context_text}\n\n"
        f"SOURCES USED:\n{sources_list}\n\n"
        f"{_RAG_INSTRUCTIONS}\n\n"
        f"USER QUESTION: {user_query}"
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class RetrievalService:
    """Read-only query path over one knowledge base at a time.

    Parameters
    ----------
    embedder:
        Must use the same model and dimension as ingestion.
    vector_index:
        Similarity search scoped by ``knowledge_base_id``.
    metadata_store:
        Source of full chunk rows for the join.
    cache:
        Optional cache for query embeddings.
    """

    def __init__(
        self,
        embedder: EmbeddingGenerator,
        vector_index: IVectorIndex,
        metadata_store: IMetadataStore,
        cache: ICacheProvider | None = None,
    ) -> None:
        self._embedder = embedder
        self._vector_index = vector_index
        self._metadata_store = metadata_store
        self._cache = cache

    async def retrieve(
        self,
        query: str,
        knowledge_base_id: str,
        top_k: int = 10,
        min_score: float = 0.7,
        max_tokens: int = 4000,
        diversity_threshold: float = 0.85,
    ) -> RetrievalContext:
        """Select the passages of *knowledge_base_id* most relevant to *query*.

        Raises
        ------
        pydantic.ValidationError
            If an option is out of range.
        RetrievalError
            If the embedding, vector or metadata layer fails.
        """
        options = RetrievalOptions(
            query=query,
            top_k=top_k,
            min_score=min_score,
            max_tokens=max_tokens,
            diversity_threshold=diversity_threshold,
        )
        log = logger.bind(knowledge_base_id=knowledge_base_id)

        try:
            vector = await self._embed_query(options.query)
            candidates = await self._vector_index.query(
                vector,
                VectorFilter(field="knowledge_base_id", value=knowledge_base_id),
                top_k=options.top_k * 2,
                min_score=options.min_score,
            )
            if not candidates:
                log.info("retrieval_no_candidates")
                return RetrievalContext(query=options.query)

            diverse = apply_diversity_filter(candidates, options.diversity_threshold)
            rows = await self._metadata_store.get_chunks_by_vector_ids([m.id for m in diverse])
        except KnowledgeBaseError as exc:
            log.error("retrieval_failed", error=str(exc), error_type=type(exc).__name__)
            raise RetrievalError(f"Failed to retrieve context: {exc}") from exc

        rows_by_vector = {row.vector_id: row for row in rows}
        joined: list[RetrievedChunk] = []
        for match in diverse:
            row = rows_by_vector.get(match.id)
            if row is None:
                log.debug("retrieval_orphan_vector", vector_id=match.id)
                continue
            joined.append(
                RetrievedChunk(
                    id=row.id,
                    vector_id=match.id,
                    document_id=row.document_id,
                    content=row.content,
                    file_name=match.metadata.file_name,
                    chunk_index=row.chunk_index,
                    similarity=match.score,
                    token_count=row.token_count,
                    position=row.position,
                )
            )

        admitted = apply_token_limit(joined, options.max_tokens)
        total_tokens = sum(c.token_count for c in admitted)
        log.info(
            "retrieval_complete",
            candidates=len(candidates),
            diverse=len(diverse),
            joined=len(joined),
            admitted=len(admitted),
            total_tokens=total_tokens,
        )
        return RetrievalContext(
            query=options.query,
            chunks=admitted,
            total_tokens=total_tokens,
            sources=summarize_sources(admitted),
        )

    async def _embed_query(self, query: str) -> list[float]:
        cache_key = self._cache_key(query)
        if self._cache is not None:
            try:
                cached = await self._cache.get(cache_key)
            except Exception as exc:
                logger.warning("query_embedding_cache_error", error=str(exc))
                cached = None
            if cached is not None:
                return list(cached)

        vector = await self._embedder.embed(query)

        if self._cache is not None:
            try:
                await self._cache.set(cache_key, vector)
            except Exception as exc:
                logger.warning("query_embedding_cache_error", error=str(exc))
        return vector

    @staticmethod
    def _cache_key(query: str) -> str:
        return "query_embedding:" + hashlib.sha256(query.encode()).hexdigest()[:32]
