"""Abstract base class for durable byte storage.

Uploaded files are written once and read back by URL when the background
pipeline runs.  No mutation or versioning is required.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class BlobRef:
    """Location of a stored blob."""

    url: str
    pathname: str


# Concrete implementation: LocalBlobStore (kbrag/providers/blob/)
class IBlobStore(ABC):
    """Contract for the byte store documents are uploaded to."""

    @abstractmethod
    async def put(self, name: str, data: bytes) -> BlobRef:
        """Durably store *data* and return where it lives.

        Implementations must not overwrite an existing blob: two uploads with
        the same *name* receive distinct pathnames.

        Raises
        ------
        kbrag.utils.errors.BlobStoreError
            If the bytes cannot be written.
        """

    @abstractmethod
    async def fetch(self, url: str) -> bytes:
        """Return the bytes stored at *url*.

        Raises
        ------
        kbrag.utils.errors.BlobStoreError
            If the blob is missing or unreachable.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"local_blob"``."""
