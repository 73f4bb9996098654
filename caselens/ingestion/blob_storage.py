import asyncio
from pathlib import Path
from typing import Protocol

from caselens.exceptions import BlobDownloadError
from caselens.logging_config import get_logger

log = get_logger(__name__)


class BlobStorage(Protocol):
    """Download side of the upload bucket."""

    async def download(self, path: str) -> bytes:
        ...


class LocalBlobStorage:
    """Blob storage backed by a directory, keyed by relative path."""

    def __init__(self, root: Path):
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self.root / path.lstrip("/")).resolve()
        # Refuse paths that escape the storage root
        if self.root != target and self.root not in target.parents:
            raise BlobDownloadError(f"Path outside storage root: {path}")
        return target

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            data = await asyncio.to_thread(target.read_bytes)
        except OSError as e:
            raise BlobDownloadError(f"Failed to download {path}: {e}") from e
        log.debug("blob_downloaded", path=path, size=len(data))
        return data
