"""Local filesystem blob store for generated request PDFs."""

import asyncio
import logging
from pathlib import Path
from urllib.parse import urlparse

from opradraft.core.errors import MalformedInputError, ProviderError

logger = logging.getLogger(__name__)


class LocalBlobStore:
    """BlobStore writing under ``root``.

    URLs are ``{base_url}/{path}`` when a base URL is configured (files are
    served by something else), otherwise ``file://`` URLs.
    """

    def __init__(self, root: str | Path, base_url: str = ""):
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        target = (self.root / path.lstrip("/")).resolve()
        if self.root not in target.parents:
            raise MalformedInputError(f"Blob path escapes store root: {path!r}")
        return target

    def _url_for(self, target: Path) -> str:
        if self.base_url:
            return f"{self.base_url}/{target.relative_to(self.root).as_posix()}"
        return target.as_uri()

    def _path_for(self, url: str) -> Path:
        if self.base_url and url.startswith(self.base_url + "/"):
            return self._resolve(url[len(self.base_url) + 1:])
        parsed = urlparse(url)
        target = Path(parsed.path).resolve()
        if parsed.scheme != "file" or self.root not in target.parents:
            raise MalformedInputError(f"Not a URL from this blob store: {url!r}")
        return target

    async def store(self, data: bytes, path: str) -> str:
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise ProviderError(f"Failed to store blob {path}: {e}", "blob") from e
        logger.info("Stored blob %s (%d bytes)", path, len(data))
        return self._url_for(target)

    async def delete(self, url: str) -> None:
        target = self._path_for(url)
        try:
            await asyncio.to_thread(target.unlink, True)
        except OSError as e:
            raise ProviderError(f"Failed to delete blob {url}: {e}", "blob") from e
        logger.info("Deleted blob %s", url)
