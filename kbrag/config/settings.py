"""Application settings loaded from environment variables via pydantic-settings.

Values are read from (highest priority first):

  1. Environment variables -- e.g. ``OPENAI_API_KEY=sk-abc123``
  2. ``.env`` in the working directory
  3. The defaults below

Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``; matching is
case-insensitive.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """kbrag application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Embedding provider ===
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoints (TogetherAI, Azure proxies, ...)
    openai_embedding_model: str = "text-embedding-ada-002"
    # Must match the dimension the vector collection was built with.
    embedding_dimension: int = 1536
    embedding_max_input_chars: int = 8000
    embedding_batch_size: int = 100
    embedding_max_concurrency: int = 4

    # === Vector index ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "kbrag_chunks"
    vector_metadata_content_limit: int = 40000
    chromadb_native_filtered_delete: bool = True

    # === Metadata + blob storage ===
    metadata_db_path: str = "data/kbrag.db"
    blob_storage_dir: str = "data/blobs"

    # === Chunking ===
    chunk_size: int = 1000
    chunk_overlap: int = 200

    # === Retrieval defaults ===
    rag_top_k: int = 10
    rag_min_score: float = 0.7
    rag_max_tokens: int = 4000
    rag_diversity_threshold: float = 0.85

    # === Uploads (enforced by callers, not the pipeline) ===
    max_upload_bytes: int = 10 * 1024 * 1024

    # === Query-embedding cache ===
    cache_enabled: bool = False
    cache_max_size: int = 1000
    cache_ttl: int = 300

    # === App config ===
    app_env: str = "development"
    log_level: str = "INFO"
