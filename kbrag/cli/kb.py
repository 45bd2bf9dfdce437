# =============================================================================
# kbrag/cli/kb.py - Operator CLI for knowledge bases
# =============================================================================
#
# One-shot commands for managing knowledge bases and their documents from a
# terminal.  Every command builds its own providers from Settings and the
# optional YAML config, runs to completion, and exits.
#
# Supported subcommands:
#
#   create-kb  - Create a knowledge base
#   list-kbs   - List an owner's knowledge bases
#   list-docs  - List the documents of a knowledge base
#   upload     - Upload a file and wait for it to become ready or failed
#   status     - Show a document's status and chunk count
#   reprocess  - Retry a failed document
#   search     - Retrieve context for a query (optionally render the prompt)
#   delete-doc - Delete a document with its chunks and vectors
#   delete-kb  - Delete a knowledge base with everything in it
#   stats      - Show vector index statistics
#
# Usage examples:
#   python -m kbrag.cli create-kb --name "Handbook"
#   python -m kbrag.cli upload --kb <id> --file handbook.docx
#   python -m kbrag.cli search --kb <id> --query "vacation policy" --prompt "You are helpful."
# =============================================================================

"""Operator CLI for kbrag knowledge bases.

Usage::

    python -m kbrag.cli create-kb --name "Handbook"
    python -m kbrag.cli upload --kb <id> --file handbook.docx
    python -m kbrag.cli search --kb <id> --query "vacation policy"
    python -m kbrag.cli stats
"""

from __future__ import annotations

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path
from typing import Any

from kbrag.config.loader import load_config
from kbrag.config.settings import Settings
from kbrag.models.knowledge import DocumentStatus, Visibility
from kbrag.services.ingestion.text_extractor import DOCX, PLAIN_TEXT, SUPPORTED_MIME_TYPES
from kbrag.utils.errors import KnowledgeBaseError, UnsupportedFormatError
from kbrag.utils.logging import configure_logging

_EXTENSION_MIME_TYPES: dict[str, str] = {
    ".txt": PLAIN_TEXT,
    ".md": PLAIN_TEXT,
    ".docx": DOCX,
}


def ensure_upload_allowed(mime_type: str, size: int, max_bytes: int) -> None:
    """Reject uploads the pipeline should never see.

    Raises
    ------
    UnsupportedFormatError
        If *mime_type* has no extractor.
    ValueError
        If *size* exceeds *max_bytes*.
    """
    base_type = mime_type.split(";", 1)[0].strip().lower()
    if base_type not in SUPPORTED_MIME_TYPES:
        raise UnsupportedFormatError(
            f"Unsupported file type {mime_type}; allowed: {', '.join(sorted(SUPPORTED_MIME_TYPES))}"
        )
    if size > max_bytes:
        raise ValueError(f"File is {size} bytes; the limit is {max_bytes} bytes")


def _guess_mime_type(path: Path) -> str:
    mime_type = _EXTENSION_MIME_TYPES.get(path.suffix.lower())
    if mime_type:
        return mime_type
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


# ---------------------------------------------------------------------------
# Component factories
# ---------------------------------------------------------------------------


def _build_embedding_provider(app_settings: Settings):  # noqa: ANN202
    """Build the embedding provider.

    Imports are deferred so commands that never touch embeddings do not load
    the openai SDK.
    """
    from kbrag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

    return OpenAIEmbeddingProvider(settings=app_settings)


def _build_embedder(app_settings: Settings, config: dict, provider: Any = None):  # noqa: ANN202
    """Build the embedding generator, or ``None`` if no API key is configured.

    The vector dimension is the provider's: its known-model table first,
    then ``EMBEDDING_DIMENSION``.
    """
    from kbrag.services.embedding_generator import EmbeddingGenerator

    provider = provider or _build_embedding_provider(app_settings)
    if not provider.is_available():
        return None

    embedding_cfg = config.get("embedding", {})
    return EmbeddingGenerator(
        provider=provider,
        dimension=provider.get_dimension(),
        max_input_chars=embedding_cfg.get("max_input_chars", app_settings.embedding_max_input_chars),
        max_concurrency=embedding_cfg.get("max_concurrency", app_settings.embedding_max_concurrency),
    )


def _build_vector_index(  # noqa: ANN202
    app_settings: Settings, config: dict, dimension: int | None = None
):
    from kbrag.providers.vector_store.chromadb_index import ChromaDBVectorIndex

    if dimension is None:
        dimension = _build_embedding_provider(app_settings).get_dimension()
    return ChromaDBVectorIndex(
        dimension=dimension,
        persist_directory=app_settings.chromadb_persist_dir,
        collection_name=app_settings.chromadb_collection,
        metadata_content_limit=app_settings.vector_metadata_content_limit,
        native_filtered_delete=app_settings.chromadb_native_filtered_delete,
    )


async def _build_metadata_store(app_settings: Settings):  # noqa: ANN202
    from kbrag.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore

    store = SQLiteMetadataStore(db_path=app_settings.metadata_db_path)
    await store.initialize()
    return store


def _build_ingestion_service(
    app_settings: Settings, config: dict, metadata_store: Any
):  # noqa: ANN202
    """Wire the ingestion pipeline.

    Returns
    -------
    tuple[IngestionService, BackgroundTaskRunner] or tuple[None, str]
        The service and its runner, or ``None`` with an error message.
    """
    embedder = _build_embedder(app_settings, config)
    if embedder is None:
        return None, "No embedding provider available. Set OPENAI_API_KEY."

    from kbrag.providers.blob.local_blob_store import LocalBlobStore
    from kbrag.services.ingestion.chunker import TextChunker
    from kbrag.services.ingestion.ingestion_service import IngestionService
    from kbrag.services.ingestion.text_extractor import TextExtractor
    from kbrag.utils.concurrency import BackgroundTaskRunner

    chunking_cfg = config.get("chunking", {})
    runner = BackgroundTaskRunner()
    service = IngestionService(
        extractor=TextExtractor(),
        chunker=TextChunker(
            chunk_size=chunking_cfg.get("chunk_size", app_settings.chunk_size),
            overlap=chunking_cfg.get("overlap", app_settings.chunk_overlap),
            separators=chunking_cfg.get("separators"),
        ),
        embedder=embedder,
        vector_index=_build_vector_index(app_settings, config, dimension=embedder.dimension),
        metadata_store=metadata_store,
        blob_store=LocalBlobStore(app_settings.blob_storage_dir),
        task_runner=runner,
        embed_batch_size=config.get("embedding", {}).get(
            "batch_size", app_settings.embedding_batch_size
        ),
    )
    return service, runner


def _build_retrieval_service(app_settings: Settings, config: dict, metadata_store: Any):  # noqa: ANN202
    embedder = _build_embedder(app_settings, config)
    if embedder is None:
        return None

    from kbrag.services.retrieval_service import RetrievalService

    cache = None
    if app_settings.cache_enabled:
        from kbrag.providers.cache.memory_cache import MemoryCacheProvider

        cache = MemoryCacheProvider(max_size=app_settings.cache_max_size, ttl=app_settings.cache_ttl)

    return RetrievalService(
        embedder=embedder,
        vector_index=_build_vector_index(app_settings, config, dimension=embedder.dimension),
        metadata_store=metadata_store,
        cache=cache,
    )


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_create_kb(args: argparse.Namespace, app_settings: Settings, config: dict) -> int:
    store = await _build_metadata_store(app_settings)
    kb = await store.create_knowledge_base(
        owner_id=args.owner,
        name=args.name,
        description=args.description,
        visibility=Visibility(args.visibility),
    )
    print(f"Created knowledge base {kb.id} ({kb.name})")
    return 0


async def _handle_list_kbs(args: argparse.Namespace, app_settings: Settings, config: dict) -> int:
    store = await _build_metadata_store(app_settings)
    kbs = await store.list_knowledge_bases(args.owner)
    if not kbs:
        print(f"No knowledge bases for owner '{args.owner}'.")
        return 0
    for kb in kbs:
        print(f"{kb.id}  {kb.name:<30} {kb.visibility.value:<8} updated {kb.updated_at:%Y-%m-%d %H:%M}")
    return 0


async def _handle_list_docs(args: argparse.Namespace, app_settings: Settings, config: dict) -> int:
    store = await _build_metadata_store(app_settings)
    status = DocumentStatus(args.status) if args.status else None
    documents = await store.list_documents(args.kb, status=status)
    if not documents:
        print("No documents.")
        return 0
    for doc in documents:
        print(f"{doc.id}  {doc.status.value:<10} {doc.original_name}")
    return 0


async def _handle_upload(args: argparse.Namespace, app_settings: Settings, config: dict) -> int:
    path = Path(args.file)
    data = path.read_bytes()
    mime_type = args.mime_type or _guess_mime_type(path)
    max_bytes = config.get("uploads", {}).get("max_bytes", app_settings.max_upload_bytes)
    ensure_upload_allowed(mime_type, len(data), max_bytes)

    store = await _build_metadata_store(app_settings)
    service, runner = _build_ingestion_service(app_settings, config, store)
    if service is None:
        print(f"Error: {runner}", file=sys.stderr)
        return 1

    print(f"Uploading {path.name} ({len(data)} bytes, {mime_type})")
    document = await service.upload_document(args.kb, path.name, data, mime_type)
    print(f"  Document: {document.id} ({document.status.value})")

    document = await _await_processing(service, store, runner, document, args.timeout)
    if document.status != DocumentStatus.READY:
        print(f"  Failed: {document.error_message or document.status.value}")
        return 1

    chunks = await store.get_chunks_by_document(document.id)
    print(f"  Ready: {len(chunks)} chunks, {sum(c.token_count for c in chunks)} tokens")
    return 0


async def _await_processing(
    service: Any, store: Any, runner: Any, document: Any, timeout: float
) -> Any:
    """Poll *document* for up to *timeout* seconds, then let its run finish.

    Processing is never aborted, so a timeout only ends the polling: the
    command reports it and still waits for the run to reach a terminal
    status before exiting.
    """
    try:
        document = await service.wait_for_document(document.id, timeout=timeout)
    except TimeoutError:
        print(f"  Still {document.status.value} after {timeout:g}s; waiting for the run to finish")
    finally:
        await runner.drain()
    return await store.get_document(document.id) or document


async def _handle_status(args: argparse.Namespace, app_settings: Settings, config: dict) -> int:
    store = await _build_metadata_store(app_settings)
    document = await store.get_document(args.document)
    if document is None:
        print(f"Document {args.document} not found.", file=sys.stderr)
        return 1

    chunks = await store.get_chunks_by_document(document.id)
    print(f"Document:  {document.id}")
    print(f"  Name:    {document.original_name}")
    print(f"  Type:    {document.mime_type}")
    print(f"  Size:    {document.file_size} bytes")
    print(f"  Status:  {document.status.value}")
    print(f"  Chunks:  {len(chunks)}")
    if document.error_message:
        print(f"  Error:   {document.error_message}")
    return 0


async def _handle_reprocess(args: argparse.Namespace, app_settings: Settings, config: dict) -> int:
    store = await _build_metadata_store(app_settings)
    service, runner = _build_ingestion_service(app_settings, config, store)
    if service is None:
        print(f"Error: {runner}", file=sys.stderr)
        return 1

    document = await service.reprocess_document(args.document)
    print(f"Reprocessing {document.id} ...")
    document = await _await_processing(service, store, runner, document, args.timeout)

    print(f"  Status: {document.status.value}")
    if document.error_message:
        print(f"  Error:  {document.error_message}")
    return 0 if document.status == DocumentStatus.READY else 1


async def _handle_search(args: argparse.Namespace, app_settings: Settings, config: dict) -> int:
    store = await _build_metadata_store(app_settings)
    service = _build_retrieval_service(app_settings, config, store)
    if service is None:
        print("Error: No embedding provider available. Set OPENAI_API_KEY.", file=sys.stderr)
        return 1

    retrieval_cfg = config.get("retrieval", {})
    context = await service.retrieve(
        query=args.query,
        knowledge_base_id=args.kb,
        top_k=args.top_k or retrieval_cfg.get("top_k", app_settings.rag_top_k),
        min_score=(
            args.min_score
            if args.min_score is not None
            else retrieval_cfg.get("min_score", app_settings.rag_min_score)
        ),
        max_tokens=args.max_tokens or retrieval_cfg.get("max_tokens", app_settings.rag_max_tokens),
        diversity_threshold=retrieval_cfg.get(
            "diversity_threshold", app_settings.rag_diversity_threshold
        ),
    )

    if args.prompt is not None:
        from kbrag.services.retrieval_service import build_rag_system_prompt

        print(build_rag_system_prompt(args.prompt, context, args.query))
        return 0

    if not context.chunks:
        print("No relevant context found.")
        return 0

    print(f"{len(context.chunks)} chunks, {context.total_tokens} tokens")
    for i, chunk in enumerate(context.chunks, start=1):
        preview = chunk.content[:200].replace("\n", " ")
        print(f"\n[{i}] {chunk.file_name} #{chunk.chunk_index} (similarity {chunk.similarity:.3f})")
        print(f"    {preview}")
    print("\nSources:")
    for source in context.sources:
        print(f"  {source.file_name:<40} {source.chunks}")
    return 0


async def _handle_delete_doc(args: argparse.Namespace, app_settings: Settings, config: dict) -> int:
    store = await _build_metadata_store(app_settings)
    document = await store.get_document(args.document)
    if document is None:
        print(f"Document {args.document} not found.", file=sys.stderr)
        return 1
    if not args.yes and not _confirm(f"Delete document '{document.original_name}'?"):
        print("  Aborted.")
        return 0

    await _build_deletion_service(app_settings, config, store).delete_document(document.id)
    print(f"Deleted document {document.id}")
    return 0


async def _handle_delete_kb(args: argparse.Namespace, app_settings: Settings, config: dict) -> int:
    store = await _build_metadata_store(app_settings)
    kb = await store.get_knowledge_base(args.kb)
    if kb is None:
        print(f"Knowledge base {args.kb} not found.", file=sys.stderr)
        return 1
    if not args.yes and not _confirm(f"Delete knowledge base '{kb.name}' and all its documents?"):
        print("  Aborted.")
        return 0

    await _build_deletion_service(app_settings, config, store).delete_knowledge_base(kb.id)
    print(f"Deleted knowledge base {kb.id}")
    return 0


async def _handle_stats(args: argparse.Namespace, app_settings: Settings, config: dict) -> int:
    vector_index = _build_vector_index(app_settings, config)
    stats = await vector_index.get_stats()

    print("Vector Index Statistics")
    print("=" * 40)
    print(f"  Provider:       {vector_index.get_provider_name()}")
    print(f"  Total vectors:  {stats.total_vectors}")
    print(f"  Dimension:      {stats.dimension}")
    return 0


def _build_deletion_service(app_settings: Settings, config: dict, store: Any):  # noqa: ANN202
    """Ingestion service wired only for deletes, which need no API key."""
    from kbrag.services.ingestion.ingestion_service import IngestionService

    return IngestionService(
        extractor=None,
        chunker=None,
        embedder=None,
        vector_index=_build_vector_index(app_settings, config),
        metadata_store=store,
        blob_store=None,
        task_runner=None,
    )


def _confirm(prompt: str) -> bool:
    return input(f"  {prompt} [y/N] ").strip().lower() in ("y", "yes")


_HANDLERS = {
    "create-kb": _handle_create_kb,
    "list-kbs": _handle_list_kbs,
    "list-docs": _handle_list_docs,
    "upload": _handle_upload,
    "status": _handle_status,
    "reprocess": _handle_reprocess,
    "search": _handle_search,
    "delete-doc": _handle_delete_doc,
    "delete-kb": _handle_delete_kb,
    "stats": _handle_stats,
}


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the knowledge-base CLI."""
    parser = argparse.ArgumentParser(
        prog="kbrag",
        description="Manage kbrag knowledge bases, documents and retrieval.",
    )
    parser.add_argument(
        "--config",
        default="config/config.yaml",
        help="Optional YAML config file (default: config/config.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- create-kb --
    create_parser = subparsers.add_parser("create-kb", help="Create a knowledge base")
    create_parser.add_argument("--name", required=True, help="Knowledge base name")
    create_parser.add_argument("--description", default=None, help="Optional description")
    create_parser.add_argument("--owner", default="local", help="Owner id (default: local)")
    create_parser.add_argument(
        "--visibility",
        choices=[v.value for v in Visibility],
        default=Visibility.PRIVATE.value,
    )

    # -- list-kbs --
    list_parser = subparsers.add_parser("list-kbs", help="List knowledge bases")
    list_parser.add_argument("--owner", default="local", help="Owner id (default: local)")

    # -- list-docs --
    docs_parser = subparsers.add_parser("list-docs", help="List documents in a knowledge base")
    docs_parser.add_argument("--kb", required=True, help="Knowledge base id")
    docs_parser.add_argument(
        "--status",
        choices=[s.value for s in DocumentStatus],
        default=None,
        help="Only show documents in this status",
    )

    # -- upload --
    upload_parser = subparsers.add_parser("upload", help="Upload and process a document")
    upload_parser.add_argument("--kb", required=True, help="Knowledge base id")
    upload_parser.add_argument("--file", required=True, help="Path to a .txt or .docx file")
    upload_parser.add_argument(
        "--mime-type", dest="mime_type", default=None, help="Override the detected MIME type"
    )
    upload_parser.add_argument(
        "--timeout",
        type=float,
        default=300.0,
        help=(
            "Seconds to poll before reporting a timeout; the command still waits "
            "for processing to finish"
        ),
    )

    # -- status --
    status_parser = subparsers.add_parser("status", help="Show a document's status")
    status_parser.add_argument("--document", required=True, help="Document id")

    # -- reprocess --
    reprocess_parser = subparsers.add_parser("reprocess", help="Retry a failed document")
    reprocess_parser.add_argument("--document", required=True, help="Document id")
    reprocess_parser.add_argument(
        "--timeout",
        type=float,
        default=300.0,
        help=(
            "Seconds to poll before reporting a timeout; the command still waits "
            "for processing to finish"
        ),
    )

    # -- search --
    search_parser = subparsers.add_parser("search", help="Retrieve context for a query")
    search_parser.add_argument("--kb", required=True, help="Knowledge base id")
    search_parser.add_argument("--query", required=True, help="Search query")
    search_parser.add_argument("--top-k", dest="top_k", type=int, default=None)
    search_parser.add_argument("--min-score", dest="min_score", type=float, default=None)
    search_parser.add_argument("--max-tokens", dest="max_tokens", type=int, default=None)
    search_parser.add_argument(
        "--prompt",
        default=None,
        help="Base system prompt; prints the assembled RAG prompt instead of the chunks",
    )

    # -- delete-doc --
    delete_doc_parser = subparsers.add_parser("delete-doc", help="Delete a document")
    delete_doc_parser.add_argument("--document", required=True, help="Document id")
    delete_doc_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation")

    # -- delete-kb --
    delete_kb_parser = subparsers.add_parser("delete-kb", help="Delete a knowledge base")
    delete_kb_parser.add_argument("--kb", required=True, help="Knowledge base id")
    delete_kb_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation")

    # -- stats --
    subparsers.add_parser("stats", help="Show vector index statistics")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parses the subcommand, loads Settings and the YAML config, configures
    logging and dispatches to the handler.  Domain errors are printed and
    turned into exit code 1.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    config = load_config(args.config, settings=app_settings)
    configure_logging(
        log_level=config.get("logging", {}).get("level", app_settings.log_level),
        json_output=app_settings.app_env == "production",
    )

    handler = _HANDLERS[args.command]
    try:
        exit_code = asyncio.run(handler(args, app_settings, config))
    except (KnowledgeBaseError, ValueError, OSError, TimeoutError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
