"""Filesystem blob store.

Writes uploaded bytes under a base directory and hands back ``file://``
URLs.  ``fetch`` also accepts ``http(s)://`` URLs, read through an injected
``httpx.AsyncClient``, so documents stored elsewhere can be processed too.
"""

from __future__ import annotations

import asyncio
import re
import uuid
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx
import structlog

from kbrag.interfaces.blob_store import BlobRef, IBlobStore
from kbrag.utils.errors import BlobStoreError

logger = structlog.get_logger(logger_name=__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class LocalBlobStore(IBlobStore):
    """Blob store backed by a local directory.

    Parameters
    ----------
    base_dir:
        Directory blobs are written to; created on first write.
    http_client:
        Client used for ``http(s)://`` URLs.  Created lazily when omitted.
    """

    def __init__(self, base_dir: str | Path, http_client: httpx.AsyncClient | None = None) -> None:
        self._base_dir = Path(base_dir)
        self._http_client = http_client

    async def put(self, name: str, data: bytes) -> BlobRef:
        safe_name = _UNSAFE_CHARS.sub("_", Path(name).name).strip("._") or "upload"
        pathname = f"{uuid.uuid4().hex}-{safe_name}"
        target = self._base_dir / pathname

        try:
            await asyncio.to_thread(self._write, target, data)
        except OSError as exc:
            raise BlobStoreError(
                message=f"Failed to write blob {pathname}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("blob_stored", pathname=pathname, bytes=len(data))
        return BlobRef(url=target.resolve().as_uri(), pathname=pathname)

    async def fetch(self, url: str) -> bytes:
        parsed = urlparse(url)
        if parsed.scheme in ("http", "https"):
            return await self._fetch_http(url)
        if parsed.scheme != "file":
            raise BlobStoreError(
                message=f"Unsupported blob URL scheme: {url}",
                provider_name=self.get_provider_name(),
            )

        path = Path(unquote(parsed.path))
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise BlobStoreError(
                message=f"Failed to read blob {url}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def get_provider_name(self) -> str:
        return "local_blob"

    async def _fetch_http(self, url: str) -> bytes:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        try:
            response = await self._http_client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise BlobStoreError(
                message=f"Failed to download blob {url}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return response.content

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        # "xb" refuses to overwrite an existing blob.
        with open(target, "xb") as f:
            f.write(data)
