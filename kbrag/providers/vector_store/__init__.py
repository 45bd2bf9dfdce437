"""Vector index implementations.

ChromaDB is the sole vector index implementation.  It stores chunk vectors on
disk and supports cosine-similarity search with metadata filtering.  Data
persists at CHROMADB_PERSIST_DIR (default: ./data/chromadb).

To swap ChromaDB for another vector database, create a new class
implementing IVectorIndex and wire it in ``kbrag/cli/kb.py``.
"""

from kbrag.providers.vector_store.chromadb_index import ChromaDBVectorIndex

__all__ = ["ChromaDBVectorIndex"]
