"""Embedding provider implementations.

Embeddings convert text into numeric vectors that capture semantic meaning.
The vectors are stored in ChromaDB and compared by cosine similarity.

OpenAIEmbeddingProvider talks to the OpenAI embeddings API, or to any
OpenAI-compatible endpoint configured through ``OPENAI_BASE_URL``.
"""

from kbrag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
