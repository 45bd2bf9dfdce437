"""SQLite-backed metadata store.

Persists knowledge bases, documents and chunk rows to a local SQLite
database at ``data/kbrag.db``.  Uses ``aiosqlite`` for async I/O and opens
one connection per operation.  Foreign keys are enabled on every
connection so document and knowledge-base deletes cascade.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from kbrag.interfaces.metadata_store import IMetadataStore
from kbrag.models.knowledge import (
    Chunk,
    ChunkPosition,
    Document,
    DocumentStatus,
    KnowledgeBase,
    Visibility,
    utc_now,
)
from kbrag.utils.errors import MetadataStoreError, NotFoundError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/kbrag.db")

# SQLite's default bind-variable ceiling is 999.
_IN_CLAUSE_BATCH = 500

_CREATE_KNOWLEDGE_BASES_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS knowledge_bases (
    id          TEXT PRIMARY KEY,
    owner_id    TEXT NOT NULL,
    name        TEXT NOT NULL,
    description TEXT,
    visibility  TEXT NOT NULL DEFAULT 'private',
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""

_CREATE_DOCUMENTS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    id                TEXT PRIMARY KEY,
    knowledge_base_id TEXT NOT NULL REFERENCES knowledge_bases(id) ON DELETE CASCADE,
    file_name         TEXT NOT NULL,
    original_name     TEXT NOT NULL,
    mime_type         TEXT NOT NULL,
    file_size         INTEGER NOT NULL,
    status            TEXT NOT NULL,
    error_message     TEXT,
    blob_url          TEXT,
    created_at        TEXT NOT NULL
);
"""

_CREATE_CHUNKS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS chunks (
    id          TEXT PRIMARY KEY,
    document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    content     TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    token_count INTEGER NOT NULL,
    vector_id   TEXT NOT NULL UNIQUE,
    position    TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    UNIQUE (document_id, chunk_index)
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_knowledge_bases_owner ON knowledge_bases(owner_id);",
    "CREATE INDEX IF NOT EXISTS idx_documents_kb ON documents(knowledge_base_id);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id);",
]

_INSERT_KNOWLEDGE_BASE_SQL = """\
INSERT INTO knowledge_bases (id, owner_id, name, description, visibility, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_KNOWLEDGE_BASE_SQL = "SELECT * FROM knowledge_bases WHERE id = ?;"

_LIST_KNOWLEDGE_BASES_SQL = """\
SELECT * FROM knowledge_bases
WHERE owner_id = ?
ORDER BY updated_at DESC;
"""

_TOUCH_KNOWLEDGE_BASE_SQL = "UPDATE knowledge_bases SET updated_at = ? WHERE id = ?;"

_DELETE_KNOWLEDGE_BASE_SQL = "DELETE FROM knowledge_bases WHERE id = ?;"

_INSERT_DOCUMENT_SQL = """\
INSERT INTO documents (
    id, knowledge_base_id, file_name, original_name, mime_type,
    file_size, status, error_message, blob_url, created_at
)
VALUES (?, ?, ?, ?, ?, ?, ?, NULL, NULL, ?);
"""

_SELECT_DOCUMENT_SQL = "SELECT * FROM documents WHERE id = ?;"

_UPDATE_DOCUMENT_STATUS_SQL = """\
UPDATE documents
SET status = ?,
    error_message = ?,
    file_name = COALESCE(?, file_name),
    blob_url = COALESCE(?, blob_url)
WHERE id = ?;
"""

_DELETE_DOCUMENT_SQL = "DELETE FROM documents WHERE id = ?;"

_INSERT_CHUNK_SQL = """\
INSERT INTO chunks (
    id, document_id, content, chunk_index, token_count, vector_id, position, created_at
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_CHUNKS_BY_DOCUMENT_SQL = """\
SELECT * FROM chunks
WHERE document_id = ?
ORDER BY chunk_index ASC;
"""

_SELECT_CHUNKS_BY_VECTOR_IDS_SQL = "SELECT * FROM chunks WHERE vector_id IN ({placeholders});"

_DELETE_CHUNKS_BY_DOCUMENT_SQL = "DELETE FROM chunks WHERE document_id = ?;"


class SQLiteMetadataStore(IMetadataStore):
    """SQLite-backed knowledge-base, document and chunk persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                await db.execute("PRAGMA foreign_keys = ON;")
                yield db
        except aiosqlite.Error as exc:
            raise MetadataStoreError(
                message=f"SQLite operation failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def initialize(self) -> None:
        """Create the knowledge_bases, documents and chunks tables if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute(_CREATE_KNOWLEDGE_BASES_TABLE_SQL)
            await db.execute(_CREATE_DOCUMENTS_TABLE_SQL)
            await db.execute(_CREATE_CHUNKS_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("metadata_db_initialized", path=str(self._db_path))

    def get_provider_name(self) -> str:
        return "sqlite"

    # ------------------------------------------------------------------
    # Knowledge bases
    # ------------------------------------------------------------------

    async def create_knowledge_base(
        self,
        owner_id: str,
        name: str,
        description: str | None = None,
        visibility: Visibility = Visibility.PRIVATE,
    ) -> KnowledgeBase:
        now = utc_now()
        kb = KnowledgeBase(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            name=name,
            description=description,
            visibility=visibility,
            created_at=now,
            updated_at=now,
        )
        async with self._connect() as db:
            await db.execute(
                _INSERT_KNOWLEDGE_BASE_SQL,
                (
                    kb.id,
                    kb.owner_id,
                    kb.name,
                    kb.description,
                    kb.visibility.value,
                    now.isoformat(),
                    now.isoformat(),
                ),
            )
            await db.commit()
        logger.info("knowledge_base_created", knowledge_base_id=kb.id, owner_id=owner_id)
        return kb

    async def get_knowledge_base(self, knowledge_base_id: str) -> KnowledgeBase | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_KNOWLEDGE_BASE_SQL, (knowledge_base_id,))
            row = await cursor.fetchone()
        return KnowledgeBase(**dict(row)) if row else None

    async def list_knowledge_bases(self, owner_id: str) -> list[KnowledgeBase]:
        async with self._connect() as db:
            cursor = await db.execute(_LIST_KNOWLEDGE_BASES_SQL, (owner_id,))
            rows = await cursor.fetchall()
        return [KnowledgeBase(**dict(row)) for row in rows]

    async def delete_knowledge_base(self, knowledge_base_id: str) -> None:
        async with self._connect() as db:
            await db.execute(_DELETE_KNOWLEDGE_BASE_SQL, (knowledge_base_id,))
            await db.commit()
        logger.info("knowledge_base_deleted", knowledge_base_id=knowledge_base_id)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(
        self,
        knowledge_base_id: str,
        file_name: str,
        original_name: str,
        mime_type: str,
        file_size: int,
        status: DocumentStatus = DocumentStatus.UPLOADING,
    ) -> Document:
        now = utc_now()
        doc = Document(
            id=str(uuid.uuid4()),
            knowledge_base_id=knowledge_base_id,
            file_name=file_name,
            original_name=original_name,
            mime_type=mime_type,
            file_size=file_size,
            status=status,
            created_at=now,
        )
        async with self._connect() as db:
            await db.execute(
                _INSERT_DOCUMENT_SQL,
                (
                    doc.id,
                    doc.knowledge_base_id,
                    doc.file_name,
                    doc.original_name,
                    doc.mime_type,
                    doc.file_size,
                    doc.status.value,
                    now.isoformat(),
                ),
            )
            await db.execute(_TOUCH_KNOWLEDGE_BASE_SQL, (now.isoformat(), knowledge_base_id))
            await db.commit()
        return doc

    async def get_document(self, document_id: str) -> Document | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_DOCUMENT_SQL, (document_id,))
            row = await cursor.fetchone()
        return Document(**dict(row)) if row else None

    async def list_documents(
        self,
        knowledge_base_id: str,
        status: DocumentStatus | None = None,
    ) -> list[Document]:
        query = "SELECT * FROM documents WHERE knowledge_base_id = ?"
        params: list[Any] = [knowledge_base_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY created_at DESC;"

        async with self._connect() as db:
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
        return [Document(**dict(row)) for row in rows]

    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error_message: str | None = None,
        file_name: str | None = None,
        blob_url: str | None = None,
    ) -> Document:
        async with self._connect() as db:
            cursor = await db.execute(
                _UPDATE_DOCUMENT_STATUS_SQL,
                (status.value, error_message, file_name, blob_url, document_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(
                    message=f"Document {document_id} not found",
                    provider_name=self.get_provider_name(),
                )
            await db.commit()
            cursor = await db.execute(_SELECT_DOCUMENT_SQL, (document_id,))
            row = await cursor.fetchone()

        logger.debug("document_status_updated", document_id=document_id, status=status.value)
        return Document(**dict(row))

    async def delete_document(self, document_id: str) -> None:
        async with self._connect() as db:
            await db.execute(_DELETE_DOCUMENT_SQL, (document_id,))
            await db.commit()
        logger.info("document_deleted", document_id=document_id)

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def save_chunks(self, chunks: list[Chunk]) -> list[Chunk]:
        """Insert all *chunks* in one transaction; nothing is kept on failure."""
        if not chunks:
            return []

        rows = [
            (
                c.id,
                c.document_id,
                c.content,
                c.chunk_index,
                c.token_count,
                c.vector_id,
                c.position.model_dump_json(),
                c.created_at.isoformat(),
            )
            for c in chunks
        ]
        async with self._connect() as db:
            try:
                await db.executemany(_INSERT_CHUNK_SQL, rows)
                await db.commit()
            except aiosqlite.Error:
                await db.rollback()
                raise

        logger.info("chunks_saved", document_id=chunks[0].document_id, count=len(chunks))
        return list(chunks)

    async def get_chunks_by_vector_ids(self, vector_ids: list[str]) -> list[Chunk]:
        if not vector_ids:
            return []

        chunks: list[Chunk] = []
        async with self._connect() as db:
            for start in range(0, len(vector_ids), _IN_CLAUSE_BATCH):
                batch = vector_ids[start : start + _IN_CLAUSE_BATCH]
                placeholders = ", ".join("?" for _ in batch)
                cursor = await db.execute(
                    _SELECT_CHUNKS_BY_VECTOR_IDS_SQL.format(placeholders=placeholders),
                    batch,
                )
                chunks.extend(self._row_to_chunk(row) for row in await cursor.fetchall())
        return chunks

    async def get_chunks_by_document(self, document_id: str) -> list[Chunk]:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_CHUNKS_BY_DOCUMENT_SQL, (document_id,))
            rows = await cursor.fetchall()
        return [self._row_to_chunk(row) for row in rows]

    async def delete_chunks_by_document(self, document_id: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(_DELETE_CHUNKS_BY_DOCUMENT_SQL, (document_id,))
            deleted = cursor.rowcount
            await db.commit()
        return max(deleted, 0)

    @staticmethod
    def _row_to_chunk(row: aiosqlite.Row) -> Chunk:
        data = dict(row)
        data["position"] = ChunkPosition(**json.loads(data["position"]))
        return Chunk(**data)
