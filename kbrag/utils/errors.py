"""Custom exception hierarchy for kbrag.

All application exceptions inherit from :class:`KnowledgeBaseError`, which
carries an optional ``provider_name`` so error handlers can identify which
collaborator (e.g. "openai", "chromadb", "sqlite") caused the failure.

The hierarchy is organized by pipeline stage:

    KnowledgeBaseError  (base -- catch-all for any kbrag error)
    +-- UnsupportedFormatError       (extraction: unknown MIME type)
    +-- ExtractionError              (extraction: unreadable file bytes)
    +-- EmptyContentError            (extraction/chunking produced nothing)
    +-- EmptyInputError              (blank text handed to chunker/embedder)
    +-- InputTooLongError            (text above the embedding ceiling)
    +-- EmbeddingError               (embedding provider call failed)
    |   +-- MalformedResponseError   (provider broke the vector contract)
    +-- VectorStoreError             (vector index upsert/query failure)
    +-- MetadataStoreError           (relational store failure)
    +-- BlobStoreError               (byte storage put/fetch failure)
    +-- NotFoundError                (knowledge base / document missing)
    +-- InvalidStateTransitionError  (document status machine violation)
    +-- RetrievalError               (any failure surfaced by retrieve())
    +-- ConfigurationError           (startup / missing config)
"""


class KnowledgeBaseError(Exception):
    """Base exception for all kbrag errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which collaborator triggered the error.
    ``__str__`` prefixes the provider name in brackets, e.g.
    ``[chromadb] Failed to query vectors``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Extraction / chunking errors
# ---------------------------------------------------------------------------

class UnsupportedFormatError(KnowledgeBaseError):
    """Raised when a document's MIME type has no text extractor."""

    def __init__(
        self,
        message: str = "Unsupported document format",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionError(KnowledgeBaseError):
    """Raised when file bytes cannot be parsed for their declared format."""

    def __init__(
        self,
        message: str = "Failed to extract text content",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmptyContentError(KnowledgeBaseError):
    """Raised when a document yields no usable text or no chunks."""

    def __init__(
        self,
        message: str = "No content could be extracted from the document",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmptyInputError(KnowledgeBaseError):
    """Raised when blank text is passed to the chunker or embedder."""

    def __init__(
        self,
        message: str = "Text cannot be empty",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InputTooLongError(KnowledgeBaseError):
    """Raised when text exceeds the embedding provider's character ceiling."""

    def __init__(
        self,
        message: str = "Text too long for embedding",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Provider errors
# ---------------------------------------------------------------------------

class EmbeddingError(KnowledgeBaseError):
    """Raised when an embedding provider call fails."""

    def __init__(
        self,
        message: str = "Failed to generate embedding",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class MalformedResponseError(EmbeddingError):
    """Raised when an embedding response has the wrong count or dimension."""

    def __init__(
        self,
        message: str = "Invalid embedding response",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class VectorStoreError(KnowledgeBaseError):
    """Raised when a vector index upsert or query fails."""

    def __init__(
        self,
        message: str = "Vector store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class MetadataStoreError(KnowledgeBaseError):
    """Raised when the relational metadata store rejects an operation."""

    def __init__(
        self,
        message: str = "Metadata store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class BlobStoreError(KnowledgeBaseError):
    """Raised when document bytes cannot be stored or fetched."""

    def __init__(
        self,
        message: str = "Blob store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration errors
# ---------------------------------------------------------------------------

class NotFoundError(KnowledgeBaseError):
    """Raised when a knowledge base or document disappears mid-operation."""

    def __init__(
        self,
        message: str = "Resource not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidStateTransitionError(KnowledgeBaseError):
    """Raised when a document status change is not allowed."""

    def __init__(
        self,
        message: str = "Invalid document status transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RetrievalError(KnowledgeBaseError):
    """Raised when context retrieval fails in any collaborator."""

    def __init__(
        self,
        message: str = "Failed to retrieve context",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(KnowledgeBaseError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
