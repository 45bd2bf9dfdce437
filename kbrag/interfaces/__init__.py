"""Public interface definitions for the pipeline's external collaborators.

Every collaborator is reached only through the abstract base classes in this
package.  Concrete adapters live in ``kbrag/providers/`` and are wired
together in ``kbrag/cli/kb.py``; tests inject mocks built with
``MagicMock(spec=...)``.

CONCRETE PROVIDER MAP:
    Interface            →  Concrete implementation (in kbrag/providers/)
    ─────────────────────────────────────────────────────────────────
    IEmbeddingProvider   →  OpenAIEmbeddingProvider
    IVectorIndex         →  ChromaDBVectorIndex
    IMetadataStore       →  SQLiteMetadataStore
    IBlobStore           →  LocalBlobStore
    ICacheProvider       →  MemoryCacheProvider
"""

from kbrag.interfaces.blob_store import BlobRef, IBlobStore
from kbrag.interfaces.cache_provider import ICacheProvider
from kbrag.interfaces.embedding_provider import IEmbeddingProvider
from kbrag.interfaces.metadata_store import IMetadataStore
from kbrag.interfaces.vector_index import IVectorIndex

__all__ = [
    "BlobRef",
    "IBlobStore",
    "ICacheProvider",
    "IEmbeddingProvider",
    "IMetadataStore",
    "IVectorIndex",
]
