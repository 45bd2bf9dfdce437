"""Abstract base class for the relational metadata store.

Holds knowledge-base, document and chunk rows.  The pipeline relies on
three guarantees from any implementation:

* ``save_chunks`` is atomic: all rows for a document are written, or none.
* Deleting a document removes its chunks; deleting a knowledge base removes
  its documents and their chunks.
* Writes are keyed by row id, so concurrent pipelines for different
  documents never contend for the same rows.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from kbrag.models.knowledge import (
    Chunk,
    Document,
    DocumentStatus,
    KnowledgeBase,
    Visibility,
)


# Concrete implementation: SQLiteMetadataStore (kbrag/providers/metadata/)
class IMetadataStore(ABC):
    """Contract for knowledge-base / document / chunk persistence."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    # -- Knowledge bases -----------------------------------------------------

    @abstractmethod
    async def create_knowledge_base(
        self,
        owner_id: str,
        name: str,
        description: str | None = None,
        visibility: Visibility = Visibility.PRIVATE,
    ) -> KnowledgeBase:
        """Insert a knowledge base and return it."""

    @abstractmethod
    async def get_knowledge_base(self, knowledge_base_id: str) -> KnowledgeBase | None:
        """Return the knowledge base, or ``None`` if it does not exist."""

    @abstractmethod
    async def list_knowledge_bases(self, owner_id: str) -> list[KnowledgeBase]:
        """Return the owner's knowledge bases, most recently updated first."""

    @abstractmethod
    async def delete_knowledge_base(self, knowledge_base_id: str) -> None:
        """Delete the knowledge base with its documents and chunks."""

    # -- Documents -----------------------------------------------------------

    @abstractmethod
    async def create_document(
        self,
        knowledge_base_id: str,
        file_name: str,
        original_name: str,
        mime_type: str,
        file_size: int,
        status: DocumentStatus = DocumentStatus.UPLOADING,
    ) -> Document:
        """Insert a document row and return it."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        """Return the document, or ``None`` if it does not exist."""

    @abstractmethod
    async def list_documents(
        self,
        knowledge_base_id: str,
        status: DocumentStatus | None = None,
    ) -> list[Document]:
        """Return documents of a knowledge base, newest first."""

    @abstractmethod
    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error_message: str | None = None,
        file_name: str | None = None,
        blob_url: str | None = None,
    ) -> Document:
        """Set status and error message (cleared when ``None``).

        ``file_name`` and ``blob_url`` are only written when given.

        Raises
        ------
        kbrag.utils.errors.NotFoundError
            If the document does not exist.
        """

    @abstractmethod
    async def delete_document(self, document_id: str) -> None:
        """Delete the document and its chunks."""

    # -- Chunks --------------------------------------------------------------

    @abstractmethod
    async def save_chunks(self, chunks: list[Chunk]) -> list[Chunk]:
        """Insert all *chunks* in one transaction."""

    @abstractmethod
    async def get_chunks_by_vector_ids(self, vector_ids: list[str]) -> list[Chunk]:
        """Return chunk rows whose ``vector_id`` is in *vector_ids*."""

    @abstractmethod
    async def get_chunks_by_document(self, document_id: str) -> list[Chunk]:
        """Return a document's chunks ordered by ``chunk_index``."""

    @abstractmethod
    async def delete_chunks_by_document(self, document_id: str) -> int:
        """Delete a document's chunk rows; return how many were removed."""
