"""Metadata store implementations.

SQLiteMetadataStore keeps knowledge bases, documents and chunk rows in a
single SQLite file (default: data/kbrag.db).
"""

from kbrag.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore

__all__ = ["SQLiteMetadataStore"]
