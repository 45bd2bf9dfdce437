"""Unit tests for SQLiteMetadataStore.

Each test uses a temporary SQLite database so runs stay isolated.
"""

from __future__ import annotations

import uuid
from pathlib import Path

import pytest

from kbrag.models.knowledge import (
    Chunk,
    ChunkPosition,
    DocumentStatus,
    KnowledgeBase,
    Visibility,
)
from kbrag.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore
from kbrag.utils.errors import MetadataStoreError, NotFoundError


def _chunk(document_id: str, index: int, vector_id: str | None = None) -> Chunk:
    content = f"Chunk number {index} of the handbook."
    return Chunk(
        id=str(uuid.uuid4()),
        document_id=document_id,
        content=content,
        chunk_index=index,
        token_count=len(content) // 4,
        vector_id=vector_id or str(uuid.uuid4()),
        position=ChunkPosition(start_index=index * 10, end_index=index * 10 + len(content)),
    )


async def _document(store: SQLiteMetadataStore, kb: KnowledgeBase, name: str = "handbook.txt"):
    return await store.create_document(
        knowledge_base_id=kb.id,
        file_name=name,
        original_name=name,
        mime_type="text/plain",
        file_size=1234,
    )


# ─── Knowledge bases ─────────────────────────────────────────────────


class TestKnowledgeBases:
    @pytest.mark.asyncio
    async def test_create_and_get(self, metadata_store: SQLiteMetadataStore) -> None:
        kb = await metadata_store.create_knowledge_base(
            owner_id="owner-1",
            name="Policies",
            description="HR policies",
            visibility=Visibility.PUBLIC,
        )
        fetched = await metadata_store.get_knowledge_base(kb.id)

        assert fetched is not None
        assert fetched.name == "Policies"
        assert fetched.description == "HR policies"
        assert fetched.visibility == Visibility.PUBLIC
        assert fetched.owner_id == "owner-1"

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, metadata_store: SQLiteMetadataStore) -> None:
        assert await metadata_store.get_knowledge_base("nope") is None

    @pytest.mark.asyncio
    async def test_list_scoped_to_owner(self, metadata_store: SQLiteMetadataStore) -> None:
        await metadata_store.create_knowledge_base(owner_id="owner-1", name="A")
        await metadata_store.create_knowledge_base(owner_id="owner-1", name="B")
        await metadata_store.create_knowledge_base(owner_id="owner-2", name="C")

        names = {kb.name for kb in await metadata_store.list_knowledge_bases("owner-1")}
        assert names == {"A", "B"}

    @pytest.mark.asyncio
    async def test_adding_document_touches_updated_at(
        self, metadata_store: SQLiteMetadataStore
    ) -> None:
        first = await metadata_store.create_knowledge_base(owner_id="owner-1", name="First")
        await metadata_store.create_knowledge_base(owner_id="owner-1", name="Second")
        await _document(metadata_store, first)

        listed = await metadata_store.list_knowledge_bases("owner-1")
        assert listed[0].id == first.id

    @pytest.mark.asyncio
    async def test_delete_cascades(
        self, metadata_store: SQLiteMetadataStore, knowledge_base: KnowledgeBase
    ) -> None:
        doc = await _document(metadata_store, knowledge_base)
        await metadata_store.save_chunks([_chunk(doc.id, 0), _chunk(doc.id, 1)])

        await metadata_store.delete_knowledge_base(knowledge_base.id)

        assert await metadata_store.get_knowledge_base(knowledge_base.id) is None
        assert await metadata_store.get_document(doc.id) is None
        assert await metadata_store.get_chunks_by_document(doc.id) == []


# ─── Documents ───────────────────────────────────────────────────────


class TestDocuments:
    @pytest.mark.asyncio
    async def test_create_defaults_to_uploading(
        self, metadata_store: SQLiteMetadataStore, knowledge_base: KnowledgeBase
    ) -> None:
        doc = await _document(metadata_store, knowledge_base)
        fetched = await metadata_store.get_document(doc.id)

        assert fetched is not None
        assert fetched.status == DocumentStatus.UPLOADING
        assert fetched.blob_url is None
        assert fetched.error_message is None
        assert fetched.file_size == 1234

    @pytest.mark.asyncio
    async def test_create_for_missing_kb_fails(self, metadata_store: SQLiteMetadataStore) -> None:
        with pytest.raises(MetadataStoreError):
            await metadata_store.create_document(
                knowledge_base_id="missing",
                file_name="a.txt",
                original_name="a.txt",
                mime_type="text/plain",
                file_size=1,
            )

    @pytest.mark.asyncio
    async def test_list_filters_by_status(
        self, metadata_store: SQLiteMetadataStore, knowledge_base: KnowledgeBase
    ) -> None:
        ready = await _document(metadata_store, knowledge_base, "ready.txt")
        await _document(metadata_store, knowledge_base, "pending.txt")
        await metadata_store.update_document_status(ready.id, DocumentStatus.PROCESSING)
        await metadata_store.update_document_status(ready.id, DocumentStatus.READY)

        all_docs = await metadata_store.list_documents(knowledge_base.id)
        ready_docs = await metadata_store.list_documents(knowledge_base.id, DocumentStatus.READY)

        assert len(all_docs) == 2
        assert [d.id for d in ready_docs] == [ready.id]

    @pytest.mark.asyncio
    async def test_update_status_sets_optional_fields(
        self, metadata_store: SQLiteMetadataStore, knowledge_base: KnowledgeBase
    ) -> None:
        doc = await _document(metadata_store, knowledge_base)
        updated = await metadata_store.update_document_status(
            doc.id,
            DocumentStatus.PROCESSING,
            file_name="abc123-handbook.txt",
            blob_url="file:///tmp/abc123-handbook.txt",
        )
        assert updated.status == DocumentStatus.PROCESSING
        assert updated.file_name == "abc123-handbook.txt"
        assert updated.original_name == "handbook.txt"

        failed = await metadata_store.update_document_status(
            doc.id, DocumentStatus.FAILED, error_message="boom"
        )
        assert failed.error_message == "boom"
        # Unspecified fields are left alone.
        assert failed.blob_url == "file:///tmp/abc123-handbook.txt"

        again = await metadata_store.update_document_status(doc.id, DocumentStatus.PROCESSING)
        assert again.error_message is None

    @pytest.mark.asyncio
    async def test_update_missing_raises_not_found(
        self, metadata_store: SQLiteMetadataStore
    ) -> None:
        with pytest.raises(NotFoundError):
            await metadata_store.update_document_status("missing", DocumentStatus.FAILED)

    @pytest.mark.asyncio
    async def test_delete_document_removes_chunks(
        self, metadata_store: SQLiteMetadataStore, knowledge_base: KnowledgeBase
    ) -> None:
        doc = await _document(metadata_store, knowledge_base)
        other = await _document(metadata_store, knowledge_base, "other.txt")
        await metadata_store.save_chunks([_chunk(doc.id, 0)])
        await metadata_store.save_chunks([_chunk(other.id, 0)])

        await metadata_store.delete_document(doc.id)

        assert await metadata_store.get_document(doc.id) is None
        assert await metadata_store.get_chunks_by_document(doc.id) == []
        assert len(await metadata_store.get_chunks_by_document(other.id)) == 1


# ─── Chunks ──────────────────────────────────────────────────────────


class TestChunks:
    @pytest.mark.asyncio
    async def test_save_and_read_in_order(
        self, metadata_store: SQLiteMetadataStore, knowledge_base: KnowledgeBase
    ) -> None:
        doc = await _document(metadata_store, knowledge_base)
        chunks = [_chunk(doc.id, 2), _chunk(doc.id, 0), _chunk(doc.id, 1)]
        await metadata_store.save_chunks(chunks)

        stored = await metadata_store.get_chunks_by_document(doc.id)
        assert [c.chunk_index for c in stored] == [0, 1, 2]
        assert stored[0].position == chunks[1].position

    @pytest.mark.asyncio
    async def test_save_empty_is_noop(self, metadata_store: SQLiteMetadataStore) -> None:
        assert await metadata_store.save_chunks([]) == []

    @pytest.mark.asyncio
    async def test_save_is_atomic(
        self, metadata_store: SQLiteMetadataStore, knowledge_base: KnowledgeBase
    ) -> None:
        doc = await _document(metadata_store, knowledge_base)
        shared_vector = str(uuid.uuid4())
        batch = [
            _chunk(doc.id, 0),
            _chunk(doc.id, 1, vector_id=shared_vector),
            _chunk(doc.id, 2, vector_id=shared_vector),
        ]

        with pytest.raises(MetadataStoreError):
            await metadata_store.save_chunks(batch)
        assert await metadata_store.get_chunks_by_document(doc.id) == []

    @pytest.mark.asyncio
    async def test_get_by_vector_ids(
        self, metadata_store: SQLiteMetadataStore, knowledge_base: KnowledgeBase
    ) -> None:
        doc = await _document(metadata_store, knowledge_base)
        chunks = [_chunk(doc.id, i) for i in range(3)]
        await metadata_store.save_chunks(chunks)

        found = await metadata_store.get_chunks_by_vector_ids(
            [chunks[0].vector_id, chunks[2].vector_id, "unknown"]
        )
        assert {c.id for c in found} == {chunks[0].id, chunks[2].id}
        assert await metadata_store.get_chunks_by_vector_ids([]) == []

    @pytest.mark.asyncio
    async def test_get_by_vector_ids_batches_large_lookups(
        self, metadata_store: SQLiteMetadataStore, knowledge_base: KnowledgeBase
    ) -> None:
        doc = await _document(metadata_store, knowledge_base)
        chunks = [_chunk(doc.id, i) for i in range(1200)]
        await metadata_store.save_chunks(chunks)

        found = await metadata_store.get_chunks_by_vector_ids([c.vector_id for c in chunks])
        assert len(found) == 1200

    @pytest.mark.asyncio
    async def test_delete_chunks_by_document(
        self, metadata_store: SQLiteMetadataStore, knowledge_base: KnowledgeBase
    ) -> None:
        doc = await _document(metadata_store, knowledge_base)
        await metadata_store.save_chunks([_chunk(doc.id, 0), _chunk(doc.id, 1)])

        assert await metadata_store.delete_chunks_by_document(doc.id) == 2
        assert await metadata_store.delete_chunks_by_document(doc.id) == 0
        assert await metadata_store.get_document(doc.id) is not None


class TestInitialize:
    @pytest.mark.asyncio
    async def test_creates_parent_directory_and_is_idempotent(self, tmp_path: Path) -> None:
        store = SQLiteMetadataStore(db_path=tmp_path / "nested" / "dir" / "kb.db")
        await store.initialize()
        await store.initialize()
        assert (tmp_path / "nested" / "dir" / "kb.db").exists()
        assert store.get_provider_name() == "sqlite"
