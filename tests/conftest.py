"""Shared pytest fixtures for the kbrag test suite."""

from __future__ import annotations

import hashlib
import io
import uuid
from dataclasses import dataclass
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from docx import Document as DocxDocument

from kbrag.interfaces.embedding_provider import IEmbeddingProvider
from kbrag.models.knowledge import KnowledgeBase
from kbrag.providers.blob.local_blob_store import LocalBlobStore
from kbrag.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore
from kbrag.providers.vector_store.chromadb_index import ChromaDBVectorIndex
from kbrag.services.embedding_generator import EmbeddingGenerator
from kbrag.services.ingestion.chunker import TextChunker
from kbrag.services.ingestion.ingestion_service import IngestionService
from kbrag.services.ingestion.text_extractor import TextExtractor
from kbrag.services.retrieval_service import RetrievalService
from kbrag.utils.concurrency import BackgroundTaskRunner

EMBEDDING_DIM = 64


# ---------------------------------------------------------------------------
# Deterministic embeddings
# ---------------------------------------------------------------------------


def hash_vector(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Bag-of-words vector: each lowercase word hashes into one bucket.

    Texts sharing words get a positive cosine similarity; identical word
    sets get identical vectors.  The result is unit length.
    """
    values = [0.0] * dim
    for word in text.lower().split():
        bucket = int(hashlib.sha256(word.encode("utf-8")).hexdigest(), 16) % dim
        values[bucket] += 1.0
    if not any(values):
        values[0] = 1.0
    magnitude = sum(v * v for v in values) ** 0.5
    return [v / magnitude for v in values]


def make_embedding_provider(dim: int = EMBEDDING_DIM) -> MagicMock:
    """``IEmbeddingProvider`` mock returning :func:`hash_vector` embeddings."""
    provider = MagicMock(spec=IEmbeddingProvider)

    async def _embed(texts: list[str]) -> list[list[float]]:
        return [hash_vector(t, dim) for t in texts]

    provider.embed = AsyncMock(side_effect=_embed)
    provider.get_dimension.return_value = dim
    provider.get_provider_name.return_value = "mock-embedding"
    provider.is_available.return_value = True
    return provider


def make_docx(paragraphs: list[str], table: list[list[str]] | None = None) -> bytes:
    """Build a DOCX file in memory."""
    doc = DocxDocument()
    for text in paragraphs:
        doc.add_paragraph(text)
    if table:
        grid = doc.add_table(rows=len(table), cols=len(table[0]))
        for r, row in enumerate(table):
            for c, value in enumerate(row):
                grid.cell(r, c).text = value
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Provider fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def embedding_provider() -> MagicMock:
    return make_embedding_provider()


@pytest.fixture
def embedder(embedding_provider: MagicMock) -> EmbeddingGenerator:
    return EmbeddingGenerator(provider=embedding_provider, dimension=EMBEDDING_DIM)


@pytest_asyncio.fixture
async def metadata_store(tmp_path: Path) -> SQLiteMetadataStore:
    store = SQLiteMetadataStore(db_path=tmp_path / "kbrag.db")
    await store.initialize()
    return store


@pytest.fixture
def vector_index(tmp_path: Path) -> ChromaDBVectorIndex:
    return ChromaDBVectorIndex(
        dimension=EMBEDDING_DIM,
        persist_directory=str(tmp_path / "chroma"),
        collection_name=f"test_{uuid.uuid4().hex[:8]}",
    )


@pytest.fixture
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "blobs")


@pytest_asyncio.fixture
async def knowledge_base(metadata_store: SQLiteMetadataStore) -> KnowledgeBase:
    return await metadata_store.create_knowledge_base(owner_id="owner-1", name="Handbook")


# ---------------------------------------------------------------------------
# Wired pipeline
# ---------------------------------------------------------------------------


@dataclass
class Pipeline:
    ingestion: IngestionService
    retrieval: RetrievalService
    runner: BackgroundTaskRunner
    metadata_store: SQLiteMetadataStore
    vector_index: ChromaDBVectorIndex
    blob_store: LocalBlobStore
    embedding_provider: MagicMock


@pytest.fixture
def pipeline(
    metadata_store: SQLiteMetadataStore,
    vector_index: ChromaDBVectorIndex,
    blob_store: LocalBlobStore,
    embedding_provider: MagicMock,
    embedder: EmbeddingGenerator,
) -> Pipeline:
    """Ingestion and retrieval wired to real local stores and a fake embedder."""
    runner = BackgroundTaskRunner()
    ingestion = IngestionService(
        extractor=TextExtractor(),
        chunker=TextChunker(chunk_size=200, overlap=40),
        embedder=embedder,
        vector_index=vector_index,
        metadata_store=metadata_store,
        blob_store=blob_store,
        task_runner=runner,
        embed_batch_size=4,
    )
    retrieval = RetrievalService(
        embedder=embedder,
        vector_index=vector_index,
        metadata_store=metadata_store,
    )
    return Pipeline(
        ingestion=ingestion,
        retrieval=retrieval,
        runner=runner,
        metadata_store=metadata_store,
        vector_index=vector_index,
        blob_store=blob_store,
        embedding_provider=embedding_provider,
    )
