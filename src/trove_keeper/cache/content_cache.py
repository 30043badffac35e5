"""
Content-addressable byte cache.

Maps a source locator to bytes stored on disk, the equivalent of a
browser cache. Entries never expire; they are replaced only through
explicit invalidation.
"""

import hashlib
import os
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import structlog

from trove_keeper.errors import FilesystemError
from trove_keeper.ingestion.fetcher import Fetcher

logger = structlog.get_logger(__name__)

SIDECAR_SUFFIX = ".url"


def locator_digest(locator: str) -> str:
    """SHA-256 hex digest of a locator, used as cache identity."""
    return hashlib.sha256(locator.encode("utf-8")).hexdigest()


class ContentCache:
    """
    Local cache of locator contents.

    Layout:
    - <root>/<digest>      cached blob
    - <root>/<digest>.url  sidecar holding the original locator

    An entry is present exactly when its blob exists. Blobs are written
    to a temporary file and renamed into place, so a present blob is
    always complete. First retrievals of the same locator are serialized
    through a per-digest lock so only one fetch happens per process.

    Example:
        >>> cache = ContentCache(Path("~/.trove/cache"), HttpFetcher())
        >>> data = cache.retrieve("https://example.com/feed")
    """

    def __init__(self, root: Path, fetcher: Fetcher) -> None:
        """
        Initialize the cache, creating its root directory if needed.

        Args:
            root: Directory holding blobs and sidecars
            fetcher: Collaborator used for cache misses

        Raises:
            FilesystemError: If the root directory cannot be created
        """
        self.root = Path(root)
        self._fetcher = fetcher
        # digest -> [lock, number of callers holding or waiting on it]
        self._locks: dict[str, list] = {}
        self._locks_guard = threading.Lock()

        if not self.root.exists():
            logger.debug("Creating cache directory", path=str(self.root))
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(
                f"Unable to create cache directory: {e}", path=self.root, original_error=e
            ) from e

    def digest(self, locator: str) -> str:
        """Cache identity of a locator."""
        return locator_digest(locator)

    def path_for(self, locator: str) -> Path:
        """Path of the blob for a locator, whether or not it exists."""
        return self.root / self.digest(locator)

    def sidecar_for(self, locator: str) -> Path:
        """Path of the sidecar recording the locator."""
        return self.root / f"{self.digest(locator)}{SIDECAR_SUFFIX}"

    def contains(self, locator: str) -> bool:
        """Whether a blob is stored for the locator."""
        return self.path_for(locator).exists()

    @contextmanager
    def _lock_for(self, digest: str) -> Iterator[None]:
        """Hold the per-digest lock; the entry is dropped once nobody uses it."""
        with self._locks_guard:
            entry = self._locks.setdefault(digest, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[digest]

    def retrieve(self, locator: str) -> bytes:
        """
        Return the bytes for a locator, fetching them on a cache miss.

        Args:
            locator: Source URL

        Returns:
            bytes: Cached or freshly fetched payload

        Raises:
            TransportError: If the fetch fails (nothing is stored)
            FilesystemError: If the entry cannot be read or persisted
        """
        digest = self.digest(locator)
        blob = self.root / digest

        with self._lock_for(digest):
            if blob.exists():
                return self._read(blob)

            logger.debug("Caching", url=locator, digest=digest)
            data = self._fetcher.fetch(locator)
            self._write(locator, digest, data)
            return data

    def invalidate(self, locator: str) -> None:
        """
        Remove the stored entry for a locator. Missing entries are ignored.

        Raises:
            FilesystemError: If an existing entry cannot be removed
        """
        digest = self.digest(locator)
        with self._lock_for(digest):
            for path in (self.root / digest, self.root / f"{digest}{SIDECAR_SUFFIX}"):
                try:
                    path.unlink(missing_ok=True)
                except OSError as e:
                    raise FilesystemError(
                        f"Unable to remove cache entry: {e}",
                        locator=locator,
                        path=path,
                        original_error=e,
                    ) from e
        logger.debug("Invalidated", url=locator, digest=digest)

    def force_retrieve(self, locator: str) -> bytes:
        """Invalidate then retrieve, always performing a fresh fetch."""
        self.invalidate(locator)
        return self.retrieve(locator)

    def _read(self, blob: Path) -> bytes:
        try:
            return blob.read_bytes()
        except OSError as e:
            raise FilesystemError(
                f"Unable to read cache entry: {e}", path=blob, original_error=e
            ) from e

    def _write(self, locator: str, digest: str, data: bytes) -> None:
        sidecar = self.root / f"{digest}{SIDECAR_SUFFIX}"
        blob = self.root / digest
        tmp_name: str | None = None
        try:
            sidecar.write_text(locator, encoding="utf-8")
            fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=f".{digest}.", suffix=".tmp")
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, blob)
            tmp_name = None
        except OSError as e:
            raise FilesystemError(
                f"Unable to persist cache entry: {e}",
                locator=locator,
                path=blob,
                original_error=e,
            ) from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
