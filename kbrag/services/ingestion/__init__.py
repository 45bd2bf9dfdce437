"""Document ingestion pipeline for kbrag knowledge bases.

Orchestrates the pipeline: **store -> extract -> chunk -> embed -> index**.

1. **Extract** (text_extractor.py / TextExtractor) -- plain text and DOCX
   bytes to a single string.

2. **Chunk** (chunker.py / TextChunker) -- ~1000-character overlapping
   windows cut at paragraph, line, sentence or word boundaries.

3. **Embed** (EmbeddingGenerator) -- one vector per chunk, order preserved.

4. **Index** (via IVectorIndex) -- vectors tagged with document and
   knowledge-base ids for scoped retrieval.

The IngestionService class drives each document through the
uploading -> processing -> ready | failed status machine.
"""

from kbrag.services.ingestion.chunker import TextChunker
from kbrag.services.ingestion.ingestion_service import IngestionService
from kbrag.services.ingestion.text_extractor import TextExtractor

__all__ = [
    "IngestionService",
    "TextChunker",
    "TextExtractor",
]
