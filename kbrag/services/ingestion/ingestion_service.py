"""Orchestrator for the per-document ingestion pipeline.

Pipeline stages: **store -> extract -> chunk -> embed -> index -> persist**.

:class:`IngestionService` coordinates six collaborators (blob store, text
extractor, chunker, embedding generator, vector index, metadata store)
without any of them knowing about each other.  Work is split in two:

    0. ``upload_document`` -- synchronous with the caller: create the
       document row, store the bytes, move to ``processing`` and hand the
       rest to the background runner.
    1-7. ``process_document`` -- detached: fetch, extract, chunk, embed,
       upsert vectors, save chunk rows, mark ``ready``.

Any failure in the detached stage removes whatever the run wrote (chunk rows
and vectors) and records ``failed`` with the error message on the document.
The document's status is the only progress signal callers observe.

All dependencies are injected via constructor so providers can be swapped
without changing this class.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import TYPE_CHECKING

import structlog

from kbrag.models.knowledge import Chunk, Document, DocumentStatus, can_transition, utc_now
from kbrag.models.rag import IngestionResult, VectorFilter, VectorMetadata, VectorRecord
from kbrag.utils.errors import (
    BlobStoreError,
    EmptyContentError,
    InvalidStateTransitionError,
    NotFoundError,
)

if TYPE_CHECKING:
    from kbrag.interfaces.blob_store import IBlobStore
    from kbrag.interfaces.metadata_store import IMetadataStore
    from kbrag.interfaces.vector_index import IVectorIndex
    from kbrag.services.embedding_generator import EmbeddingGenerator
    from kbrag.services.ingestion.chunker import TextChunker
    from kbrag.services.ingestion.text_extractor import TextExtractor
    from kbrag.utils.concurrency import BackgroundTaskRunner

logger = structlog.get_logger(logger_name=__name__)


class IngestionService:
    """Drives documents through the ingestion state machine.

    Parameters
    ----------
    extractor:
        Converts stored bytes to text.
    chunker:
        Splits text into overlapping chunk records.
    embedder:
        Produces one vector per chunk, in order.
    vector_index:
        Stores chunk vectors scoped by knowledge base.
    metadata_store:
        Persists knowledge-base, document and chunk rows.
    blob_store:
        Durable storage for uploaded bytes.
    task_runner:
        Executes ``process_document`` detached from the caller.
    embed_batch_size:
        Texts per embedding provider call.
    """

    def __init__(
        self,
        extractor: TextExtractor,
        chunker: TextChunker,
        embedder: EmbeddingGenerator,
        vector_index: IVectorIndex,
        metadata_store: IMetadataStore,
        blob_store: IBlobStore,
        task_runner: BackgroundTaskRunner,
        embed_batch_size: int = 100,
    ) -> None:
        self._extractor = extractor
        self._chunker = chunker
        self._embedder = embedder
        self._vector_index = vector_index
        self._metadata_store = metadata_store
        self._blob_store = blob_store
        self._task_runner = task_runner
        self._embed_batch_size = embed_batch_size

    # ------------------------------------------------------------------
    # Upload (step 0)
    # ------------------------------------------------------------------

    async def upload_document(
        self,
        knowledge_base_id: str,
        original_name: str,
        data: bytes,
        mime_type: str,
    ) -> Document:
        """Register and store a new document, then start processing it.

        Returns the document in ``processing`` as soon as its bytes are
        stored; extraction and indexing continue in the background.

        Raises
        ------
        NotFoundError
            If the knowledge base does not exist.
        BlobStoreError
            If the bytes cannot be stored.  The document is left ``failed``.
        """
        kb = await self._metadata_store.get_knowledge_base(knowledge_base_id)
        if kb is None:
            raise NotFoundError(f"Knowledge base {knowledge_base_id} not found")

        document = await self._metadata_store.create_document(
            knowledge_base_id=knowledge_base_id,
            file_name=original_name,
            original_name=original_name,
            mime_type=mime_type,
            file_size=len(data),
        )
        log = logger.bind(document_id=document.id, knowledge_base_id=knowledge_base_id)

        try:
            blob = await self._blob_store.put(original_name, data)
        except Exception as exc:
            log.error("document_upload_failed", error=str(exc))
            await self._transition(document, DocumentStatus.FAILED, error_message=str(exc))
            raise

        document = await self._transition(
            document,
            DocumentStatus.PROCESSING,
            file_name=blob.pathname,
            blob_url=blob.url,
        )
        self._task_runner.submit(self.process_document(document.id), name=f"ingest-{document.id}")
        log.info("document_uploaded", original_name=original_name, bytes=len(data))
        return document

    # ------------------------------------------------------------------
    # Processing (steps 1-7)
    # ------------------------------------------------------------------

    async def process_document(self, document_id: str) -> IngestionResult:
        """Run the detached pipeline for one document.

        Never raises: failures are recorded on the document row and in the
        returned :class:`IngestionResult`.
        """
        start = time.monotonic()
        log = logger.bind(document_id=document_id)

        document = await self._metadata_store.get_document(document_id)
        if document is None:
            log.warning("document_missing_before_processing")
            return IngestionResult(
                document_id=document_id,
                status=DocumentStatus.FAILED.value,
                error_message="Document not found",
            )
        if document.status != DocumentStatus.PROCESSING:
            log.warning("document_not_processing", status=document.status.value)
            return IngestionResult(
                document_id=document_id,
                status=document.status.value,
                error_message=f"Document is {document.status.value}, not processing",
            )

        log = log.bind(knowledge_base_id=document.knowledge_base_id)
        try:
            if not document.blob_url:
                raise BlobStoreError("Document has no stored bytes")
            data = await self._blob_store.fetch(document.blob_url)

            text = self._extractor.extract(data, document.mime_type)
            records = self._chunker.split(text)
            if not records:
                raise EmptyContentError("Chunking produced no chunks")

            vectors = await self._embedder.embed_batch(
                [r.content for r in records],
                batch_size=self._embed_batch_size,
            )

            created_at = utc_now()
            vector_records = [
                VectorRecord(
                    id=str(uuid.uuid4()),
                    vector=vector,
                    metadata=VectorMetadata(
                        document_id=document.id,
                        knowledge_base_id=document.knowledge_base_id,
                        chunk_index=record.chunk_index,
                        content=record.content,
                        file_name=document.original_name,
                        token_count=record.token_count,
                        created_at=created_at.isoformat(),
                    ),
                )
                for record, vector in zip(records, vectors, strict=True)
            ]
            await self._vector_index.upsert(vector_records)

            chunks = [
                Chunk(
                    id=str(uuid.uuid4()),
                    document_id=document.id,
                    content=record.content,
                    chunk_index=record.chunk_index,
                    token_count=record.token_count,
                    vector_id=vector_record.id,
                    position=record.position,
                    created_at=created_at,
                )
                for record, vector_record in zip(records, vector_records, strict=True)
            ]
            await self._metadata_store.save_chunks(chunks)

            await self._transition(document, DocumentStatus.READY)
        except Exception as exc:
            elapsed = time.monotonic() - start
            log.error(
                "document_processing_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                elapsed_s=round(elapsed, 3),
            )
            await self._fail(document, str(exc))
            return IngestionResult(
                document_id=document_id,
                status=DocumentStatus.FAILED.value,
                ingestion_time=elapsed,
                error_message=str(exc),
            )

        elapsed = time.monotonic() - start
        total_tokens = sum(c.token_count for c in chunks)
        log.info(
            "document_processed",
            chunks=len(chunks),
            total_tokens=total_tokens,
            elapsed_s=round(elapsed, 3),
        )
        return IngestionResult(
            document_id=document_id,
            status=DocumentStatus.READY.value,
            chunks_created=len(chunks),
            total_tokens=total_tokens,
            ingestion_time=elapsed,
        )

    async def reprocess_document(self, document_id: str) -> Document:
        """Move a ``failed`` document back to ``processing`` and resubmit it.

        Leftover chunk rows and vectors are removed first, so a successful
        rerun leaves exactly one set of each.

        Raises
        ------
        NotFoundError
            If the document does not exist.
        InvalidStateTransitionError
            If the document is not ``failed``.
        """
        document = await self._metadata_store.get_document(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        if document.status != DocumentStatus.FAILED:
            raise InvalidStateTransitionError(
                f"Only failed documents can be reprocessed (document is {document.status.value})"
            )

        await self._remove_artifacts(document_id)
        document = await self._transition(document, DocumentStatus.PROCESSING)
        self._task_runner.submit(self.process_document(document.id), name=f"reprocess-{document.id}")
        logger.info("document_reprocess_submitted", document_id=document_id)
        return document

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete_document(self, document_id: str) -> None:
        """Delete a document's vectors (best-effort) and its rows."""
        deleted = await self._delete_vectors(VectorFilter(field="document_id", value=document_id))
        await self._metadata_store.delete_document(document_id)
        logger.info("document_removed", document_id=document_id, vectors_deleted=deleted)

    async def delete_knowledge_base(self, knowledge_base_id: str) -> None:
        """Delete a knowledge base's vectors (best-effort) and all its rows."""
        deleted = await self._delete_vectors(
            VectorFilter(field="knowledge_base_id", value=knowledge_base_id)
        )
        await self._metadata_store.delete_knowledge_base(knowledge_base_id)
        logger.info(
            "knowledge_base_removed",
            knowledge_base_id=knowledge_base_id,
            vectors_deleted=deleted,
        )

    # ------------------------------------------------------------------
    # Status polling
    # ------------------------------------------------------------------

    async def wait_for_document(
        self,
        document_id: str,
        poll_interval: float = 0.5,
        timeout: float | None = None,
    ) -> Document:
        """Poll until the document reaches ``ready`` or ``failed``.

        Raises
        ------
        NotFoundError
            If the document disappears.
        TimeoutError
            If *timeout* seconds pass first.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None
        while True:
            document = await self._metadata_store.get_document(document_id)
            if document is None:
                raise NotFoundError(f"Document {document_id} not found")
            if document.is_terminal:
                return document
            if deadline is not None and loop.time() >= deadline:
                raise TimeoutError(
                    f"Document {document_id} still {document.status.value} after {timeout}s"
                )
            await asyncio.sleep(poll_interval)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _transition(
        self,
        document: Document,
        target: DocumentStatus,
        error_message: str | None = None,
        file_name: str | None = None,
        blob_url: str | None = None,
    ) -> Document:
        if not can_transition(document.status, target):
            raise InvalidStateTransitionError(
                f"Cannot move document {document.id} from "
                f"{document.status.value} to {target.value}"
            )
        return await self._metadata_store.update_document_status(
            document.id,
            target,
            error_message=error_message,
            file_name=file_name,
            blob_url=blob_url,
        )

    async def _fail(self, document: Document, error_message: str) -> None:
        """Clean up a failed run and record the failure; never raises."""
        try:
            await self._remove_artifacts(document.id)
        except Exception as exc:
            logger.warning("failed_run_cleanup_error", document_id=document.id, error=str(exc))

        try:
            await self._transition(document, DocumentStatus.FAILED, error_message=error_message)
        except Exception as exc:
            logger.error("document_fail_status_error", document_id=document.id, error=str(exc))

    async def _remove_artifacts(self, document_id: str) -> None:
        await self._delete_vectors(VectorFilter(field="document_id", value=document_id))
        await self._metadata_store.delete_chunks_by_document(document_id)

    async def _delete_vectors(self, vector_filter: VectorFilter) -> int:
        """Best-effort vector deletion; failures are logged and reported as 0."""
        try:
            return await self._vector_index.delete_by_filter(vector_filter)
        except Exception as exc:
            logger.warning(
                "vector_delete_failed",
                field=vector_filter.field,
                value=vector_filter.value,
                error=str(exc),
            )
            return 0
