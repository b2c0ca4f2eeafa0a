"""Lookup of cached image records from blob store metadata."""

import logging
from pathlib import Path

from pydantic import ValidationError

from gallerybox.core.cache.blob_store import BlobCacheStore
from gallerybox.models.image import ImageRecord


logger = logging.getLogger(__name__)


class CachedImageIndex:
    """Read-side view of the image records stored next to cached blobs.

    A record counts as cached only while its blob exists. Sidecars whose blob
    has disappeared are dropped when encountered, so an externally deleted
    file turns back into a cache miss instead of a dangling path.
    """

    def __init__(self, store: BlobCacheStore):
        self.store = store

    def _load(self) -> list[tuple[str, ImageRecord]]:
        records = []
        for key, metadata in self.store.iter_metadata():
            try:
                records.append((key, ImageRecord.model_validate(metadata)))
            except ValidationError as e:
                logger.debug("Ignoring unreadable metadata for %s: %s", key, e)
        return records

    def _resolve(self, key: str, record: ImageRecord) -> ImageRecord | None:
        blob_path = self.store.path_for(key)
        if blob_path is None:
            logger.warning(
                "Cached image file missing for %s, dropping stale entry", record.id
            )
            self.store.remove_metadata(key)
            return None
        return self._attach(record, blob_path)

    @staticmethod
    def _attach(record: ImageRecord, blob_path: Path) -> ImageRecord:
        if record.cached_path == str(blob_path):
            return record
        try:
            size = blob_path.stat().st_size
        except FileNotFoundError:
            return record.without_cache()
        return record.model_copy(
            update={"cached_path": str(blob_path), "file_size": size}
        )

    def get(self, image_id: str) -> ImageRecord | None:
        """Cached record for ``image_id`` with a verified backing file."""
        for key, record in self._load():
            if record.id != image_id:
                continue
            resolved = self._resolve(key, record)
            if resolved is not None:
                return resolved
        return None

    def contains(self, image_id: str) -> bool:
        return self.get(image_id) is not None

    def get_range(self, offset: int, limit: int) -> list[ImageRecord]:
        """Contiguous cached records at listing positions ``offset`` onwards.

        Stops at the first position without a cached record, so the result
        length tells how much of the requested window the cache can serve.
        """
        by_position: dict[int, list[tuple[str, ImageRecord]]] = {}
        for key, record in self._load():
            if record.position is not None:
                by_position.setdefault(record.position, []).append((key, record))

        result: list[ImageRecord] = []
        for position in range(offset, offset + limit):
            resolved = None
            for key, record in by_position.get(position, []):
                resolved = self._resolve(key, record)
                if resolved is not None:
                    break
            if resolved is None:
                break
            result.append(resolved)
        return result

    def count(self) -> int:
        """Number of records with metadata, verified or not."""
        return len(self._load())
