"""Utility modules for kbrag.

- **errors** -- Domain exception hierarchy rooted at KnowledgeBaseError;
  each pipeline stage raises its own subclass so callers can handle failures
  granularly.
- **concurrency** -- semaphore-throttled gather and the background task
  runner used for detached document processing.
- **logging** -- structlog setup: coloured console output in development,
  structured JSON in production.
"""

from kbrag.utils.concurrency import BackgroundTaskRunner, throttled_gather
from kbrag.utils.errors import (
    BlobStoreError,
    ConfigurationError,
    EmbeddingError,
    EmptyContentError,
    EmptyInputError,
    ExtractionError,
    InputTooLongError,
    InvalidStateTransitionError,
    KnowledgeBaseError,
    MalformedResponseError,
    MetadataStoreError,
    NotFoundError,
    RetrievalError,
    UnsupportedFormatError,
    VectorStoreError,
)
from kbrag.utils.logging import configure_logging, get_logger

__all__ = [
    "BackgroundTaskRunner",
    "BlobStoreError",
    "ConfigurationError",
    "EmbeddingError",
    "EmptyContentError",
    "EmptyInputError",
    "ExtractionError",
    "InputTooLongError",
    "InvalidStateTransitionError",
    "KnowledgeBaseError",
    "MalformedResponseError",
    "MetadataStoreError",
    "NotFoundError",
    "RetrievalError",
    "UnsupportedFormatError",
    "VectorStoreError",
    "configure_logging",
    "get_logger",
    "throttled_gather",
]
