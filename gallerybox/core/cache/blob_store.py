"""Filesystem blob cache keyed by source URL."""

import contextlib
import errno
import json
import logging
import os
import tempfile
import threading
import time
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from gallerybox.core.cache.models import CacheEntryInfo, CacheKey, CacheStats
from gallerybox.core.errors import CacheFailure


logger = logging.getLogger(__name__)

DATA_DIR_NAME = "data"
METADATA_DIR_NAME = "metadata"
TEMP_PREFIX = ".tmp-"


class BlobCacheStore:
    """Disk-backed key to blob store.

    Blobs live in ``<root>/data/<key><suffix>``; optional JSON sidecars with
    record metadata live in ``<root>/metadata/<key>.json``. The modification
    time of a blob is its recency: it is set on write and refreshed on every
    hit, so the oldest mtime is the least recently used entry.

    Every write goes to a temporary file in the destination directory and is
    moved into place with ``os.replace``, so readers never see partial data
    and concurrent writers to one key resolve to the last one.
    """

    def __init__(self, cache_root: Path):
        """Initialize blob store.

        Args:
            cache_root: Directory that holds the whole cache

        Raises:
            CacheFailure: If the cache directories cannot be created
        """
        self.cache_root = Path(cache_root)
        self.data_dir = self.cache_root / DATA_DIR_NAME
        self.metadata_dir = self.cache_root / METADATA_DIR_NAME
        self._stats = CacheStats()
        self._stats_lock = threading.Lock()

        self._ensure_layout()
        logger.debug("Initialized blob cache at: %s", self.cache_root)

    def _ensure_layout(self) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            self.metadata_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheFailure(
                f"Cache directory unavailable: {self.cache_root}: {e}"
            ) from e

    def _count(self, counter: str) -> None:
        with self._stats_lock:
            setattr(self._stats, counter, getattr(self._stats, counter) + 1)

    # Paths

    @staticmethod
    def key_for(url: str) -> str:
        """Cache key for a source URL."""
        return CacheKey.from_url(url)

    def _metadata_path(self, key: str) -> Path:
        return self.metadata_dir / f"{key}.json"

    def path_for(self, key: str) -> Path | None:
        """Path of the blob stored under ``key`` or None when absent."""
        exact = self.data_dir / key
        if exact.is_file():
            return exact
        for candidate in self.data_dir.glob(f"{key}.*"):
            if candidate.is_file():
                return candidate
        return None

    def _key_from_blob(self, path: Path) -> str | None:
        if path.parent != self.data_dir or path.name.startswith(TEMP_PREFIX):
            return None
        stem = path.name.split(".", 1)[0]
        return stem if CacheKey.is_valid(stem) else None

    def _atomic_write(self, destination: Path, data: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(
            dir=destination.parent, prefix=f"{TEMP_PREFIX}{destination.name}."
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, destination)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise

    def _write_entry(
        self,
        blob_path: Path,
        key: str,
        data: bytes,
        metadata: dict[str, Any] | None,
    ) -> None:
        self._atomic_write(blob_path, data)
        now = time.time()
        os.utime(blob_path, (now, now))
        if metadata is not None:
            self._write_metadata(key, metadata)

    # Core operations

    def put(
        self,
        key: str,
        data: bytes,
        metadata: dict[str, Any] | None = None,
        suffix: str = "",
    ) -> Path:
        """Store ``data`` under ``key`` and mark it most recently used.

        Args:
            key: Cache key
            data: Blob content
            metadata: Optional JSON-serializable sidecar content
            suffix: File extension for the blob (e.g. ``".jpg"``)

        Returns:
            Path of the stored blob

        Raises:
            CacheFailure: On disk I/O errors
        """
        blob_path = self.data_dir / f"{key}{suffix}"
        try:
            try:
                self._write_entry(blob_path, key, data, metadata)
            except FileNotFoundError:
                # Layout removed underneath us; rebuild and retry once
                self._ensure_layout()
                self._write_entry(blob_path, key, data, metadata)
        except (OSError, TypeError, ValueError) as e:
            self._count("error_count")
            raise CacheFailure(f"Failed to cache entry {key}: {e}") from e

        logger.debug("Cached entry %s (size: %d bytes)", key, len(data))
        return blob_path

    def get(self, key: str) -> Path | None:
        """Return the blob path for ``key``, refreshing its recency.

        Returns:
            Path of the blob, or None on a miss
        """
        blob_path = self.path_for(key)
        if blob_path is None:
            self._count("miss_count")
            return None

        try:
            os.utime(blob_path, None)
        except FileNotFoundError:
            # Evicted between lookup and touch
            logger.debug("Cache entry %s vanished during lookup", key)
            self._count("miss_count")
            return None
        except OSError as e:
            self._count("error_count")
            raise CacheFailure(f"Failed to touch cache entry {key}: {e}") from e

        self._count("hit_count")
        return blob_path

    def contains(self, key: str) -> bool:
        """Check for a blob without touching its recency."""
        return self.path_for(key) is not None

    def remove(self, key: str) -> bool:
        """Delete the blob and sidecar for ``key``.

        Returns:
            True if a blob was removed, False if it was already absent
        """
        removed = False
        blob_path = self.path_for(key)
        if blob_path is not None:
            removed = self._unlink(blob_path)
        self._unlink(self._metadata_path(key))

        if removed:
            logger.debug("Deleted cache entry: %s", key)
        return removed

    def remove_metadata(self, key: str) -> bool:
        """Delete the sidecar for ``key`` while no blob backs it.

        The blob itself is never touched, so a writer that re-caches ``key``
        concurrently keeps its data.

        Returns:
            True if a sidecar was removed
        """
        if self.path_for(key) is not None:
            return False
        return self._unlink(self._metadata_path(key))

    def remove_path(self, path: Path) -> bool:
        """Delete one file under the cache root, with its sidecar if tracked.

        Returns:
            True if the file was removed, False if it was already gone
        """
        key = self._key_from_blob(path)
        removed = self._unlink(path)
        if key is not None:
            self._unlink(self._metadata_path(key))
        if removed:
            self._count("eviction_count")
        return removed

    def _unlink(self, path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            logger.debug("File %s already deleted (race condition)", path)
            return False
        except OSError as e:
            self._count("error_count")
            raise CacheFailure(f"Failed to delete {path}: {e}") from e

    def _iter_files(self) -> Iterator[Path]:
        def on_error(error: OSError) -> None:
            if error.errno == errno.ENOENT:
                return
            raise CacheFailure(f"Failed to scan cache directory: {error}") from error

        for dirpath, _dirnames, filenames in os.walk(self.cache_root, onerror=on_error):
            for filename in filenames:
                yield Path(dirpath) / filename

    def size_bytes(self) -> int:
        """Sum the sizes of every regular file under the cache root.

        Foreign files are counted. Files deleted while the scan runs are
        skipped.
        """
        total = 0
        for path in self._iter_files():
            try:
                stat = path.lstat()
            except FileNotFoundError:
                continue
            except OSError as e:
                raise CacheFailure(f"Failed to stat {path}: {e}") from e
            if not path.is_symlink():
                total += stat.st_size
        return total

    def entries(self) -> list[CacheEntryInfo]:
        """List evictable files.

        Sidecars of existing blobs are left out; they go together with their
        blob. Orphaned sidecars and stray files in the metadata directory are
        listed as foreign entries so eviction can still reclaim them.
        """
        result = []
        for path in self._iter_files():
            if path.parent == self.metadata_dir and not self._is_orphan_metadata(path):
                continue
            try:
                stat = path.lstat()
            except FileNotFoundError:
                continue
            except OSError as e:
                raise CacheFailure(f"Failed to stat {path}: {e}") from e
            result.append(
                CacheEntryInfo(
                    path=path,
                    size_bytes=stat.st_size,
                    mtime=stat.st_mtime,
                    key=self._key_from_blob(path),
                )
            )
        return result

    def _is_orphan_metadata(self, path: Path) -> bool:
        if path.name.startswith(TEMP_PREFIX):
            return False
        key = path.name[: -len(".json")] if path.name.endswith(".json") else None
        if key is None or not CacheKey.is_valid(key):
            return True
        return self.path_for(key) is None

    def clear(self) -> None:
        """Delete every file under the cache root."""
        try:
            for path in list(self._iter_files()):
                path.unlink(missing_ok=True)

            # Remove foreign subdirectories, deepest first
            for dirpath, _dirnames, _filenames in sorted(
                os.walk(self.cache_root), key=lambda item: len(item[0]), reverse=True
            ):
                directory = Path(dirpath)
                if directory in (self.cache_root, self.data_dir, self.metadata_dir):
                    continue
                with contextlib.suppress(OSError):
                    directory.rmdir()
        except OSError as e:
            self._count("error_count")
            raise CacheFailure(f"Failed to clear cache: {e}") from e

        self._ensure_layout()
        logger.debug("Cleared blob cache at %s", self.cache_root)

    # Metadata sidecars

    def _write_metadata(self, key: str, metadata: dict[str, Any]) -> None:
        payload = json.dumps(metadata, separators=(",", ":")).encode("utf-8")
        self._atomic_write(self._metadata_path(key), payload)

    def write_metadata(self, key: str, metadata: dict[str, Any]) -> None:
        """Atomically write the JSON sidecar for ``key``.

        Raises:
            CacheFailure: On disk I/O errors or unserializable metadata
        """
        try:
            self._write_metadata(key, metadata)
        except (OSError, TypeError, ValueError) as e:
            self._count("error_count")
            raise CacheFailure(f"Failed to write metadata for {key}: {e}") from e

    def read_metadata(self, key: str) -> dict[str, Any] | None:
        """Read the sidecar for ``key``; unreadable sidecars read as None."""
        metadata_path = self._metadata_path(key)
        try:
            with metadata_path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Failed to load metadata for %s: %s", key, e)
            return None
        except OSError as e:
            raise CacheFailure(f"Failed to read metadata for {key}: {e}") from e
        return data if isinstance(data, dict) else None

    def iter_metadata(self) -> Iterator[tuple[str, dict[str, Any]]]:
        """Yield ``(key, metadata)`` for every readable sidecar.

        Files in the metadata directory that are not named after a cache key
        are ignored.
        """
        try:
            candidates = sorted(self.metadata_dir.glob("*.json"))
        except OSError as e:
            raise CacheFailure(f"Failed to list cache metadata: {e}") from e

        for metadata_path in candidates:
            key = metadata_path.name[: -len(".json")]
            if not CacheKey.is_valid(key):
                continue
            metadata = self.read_metadata(key)
            if metadata is not None:
                yield key, metadata

    def get_stats(self) -> CacheStats:
        """Current statistics with entry count and size from a fresh scan."""
        entries = [entry for entry in self.entries() if not entry.is_foreign]
        total_size = self.size_bytes()
        with self._stats_lock:
            self._stats.total_entries = len(entries)
            self._stats.total_size_bytes = total_size
            return CacheStats(**vars(self._stats))
