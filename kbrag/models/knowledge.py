"""Knowledge-base domain models: knowledge bases, documents and chunks.

Defines Pydantic v2 models for the rows the metadata store persists.  All
models use frozen config; updates go through ``model_copy(update=...)``.

A document moves through a small status machine::

    uploading ──► processing ──► ready
        │             │
        └──► failed ◄─┘
               │
               └──► processing   (operator-triggered reprocessing only)

``ready`` and ``failed`` are terminal for the automatic pipeline.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def estimate_token_count(text: str) -> int:
    """Approximate token count as ``ceil(len(text) / 4)``.

    This is a fast character-based proxy, not the embedding model's
    tokenizer.  Budgets built on it are approximate near their ceiling.
    """
    return math.ceil(len(text) / 4)


class Visibility(str, Enum):
    PRIVATE = "private"
    PUBLIC = "public"


class DocumentStatus(str, Enum):
    """Lifecycle states of an uploaded document."""

    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


_ALLOWED_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.UPLOADING: frozenset({DocumentStatus.PROCESSING, DocumentStatus.FAILED}),
    DocumentStatus.PROCESSING: frozenset({DocumentStatus.READY, DocumentStatus.FAILED}),
    DocumentStatus.READY: frozenset(),
    DocumentStatus.FAILED: frozenset({DocumentStatus.PROCESSING}),
}


def can_transition(current: DocumentStatus, target: DocumentStatus) -> bool:
    """Return ``True`` if a document may move from *current* to *target*."""
    return target in _ALLOWED_TRANSITIONS[current]


# ---------------------------------------------------------------------------
# KnowledgeBase
# ---------------------------------------------------------------------------
class KnowledgeBase(BaseModel):
    """A named, owned collection of documents searchable as one unit."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique identifier (UUID).")
    owner_id: str = Field(description="Identifier of the owning user.")
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    visibility: Visibility = Visibility.PRIVATE
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------
class Document(BaseModel):
    """An uploaded file and its processing status."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique identifier (UUID).")
    knowledge_base_id: str
    # Name under which the bytes were stored (blob pathname).
    file_name: str
    # Name the user uploaded the file as; shown in citations.
    original_name: str
    mime_type: str
    file_size: int = Field(ge=0)
    status: DocumentStatus = DocumentStatus.UPLOADING
    error_message: str | None = None
    blob_url: str | None = Field(
        default=None,
        description="Blob store URL of the durable copy; set on entering processing.",
    )
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status in (DocumentStatus.READY, DocumentStatus.FAILED)


# ---------------------------------------------------------------------------
# Chunks
# ---------------------------------------------------------------------------
class ChunkPosition(BaseModel):
    """Where a chunk sits in its source text.

    Offsets are character positions in the untrimmed source, ``end_index``
    exclusive.  ``page`` is set by the page-aware splitter; ``section`` is
    free text for sources with headings.
    """

    model_config = ConfigDict(frozen=True)

    start_index: int = Field(ge=0)
    end_index: int = Field(ge=0)
    page: int | None = Field(default=None, ge=1)
    section: str | None = None

    @model_validator(mode="after")
    def _check_span(self) -> ChunkPosition:
        if self.end_index < self.start_index:
            raise ValueError("end_index must not precede start_index")
        return self


class ChunkRecord(BaseModel):
    """A chunk as produced by the splitter, before it has a vector or a row."""

    model_config = ConfigDict(frozen=True)

    content: str
    chunk_index: int = Field(ge=0)
    token_count: int = Field(ge=0)
    position: ChunkPosition


class Chunk(BaseModel):
    """A persisted chunk row, joined to exactly one vector by ``vector_id``."""

    model_config = ConfigDict(frozen=True)

    id: str
    document_id: str
    content: str
    chunk_index: int = Field(ge=0)
    token_count: int = Field(ge=0)
    vector_id: str
    position: ChunkPosition
    created_at: datetime = Field(default_factory=utc_now)
