"""Blob store implementations."""

from kbrag.providers.blob.local_blob_store import LocalBlobStore

__all__ = ["LocalBlobStore"]
