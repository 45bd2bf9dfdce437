"""kbrag: knowledge-base document ingestion and retrieval for RAG chat."""

__version__ = "0.1.0"
