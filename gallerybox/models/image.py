"""Image record model."""

from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator

from gallerybox.models.base import GalleryboxBaseModel


class ImageRecord(GalleryboxBaseModel):
    """One image of the remote listing.

    ``cached_path`` is only meaningful while the file it names exists; readers
    check the file before trusting it (see ``is_cached``).
    """

    id: str
    url: str
    thumbnail_url: str = Field(alias="thumbnailUrl")
    title: str
    cached_path: str | None = Field(default=None, alias="cachedPath")
    cached_at: datetime | None = Field(default=None, alias="cachedAt")
    file_size: int | None = Field(default=None, alias="fileSize")
    position: int | None = None
    author: str | None = None
    width: int | None = None
    height: int | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @classmethod
    def from_api(cls, item: dict[str, Any], position: int | None = None) -> "ImageRecord":
        """Build a record from one item of the ``/v2/list`` payload.

        Raises:
            KeyError: If the item has no ``id``
            ValueError: If the item fails validation
        """
        image_id = str(item["id"])
        download_url = item.get("download_url") or ""
        return cls(
            id=image_id,
            url=download_url,
            thumbnail_url=download_url,
            title=f"Image {image_id}",
            position=position,
            author=item.get("author"),
            width=item.get("width"),
            height=item.get("height"),
        )

    @property
    def is_cached(self) -> bool:
        """Whether the cached file named by this record currently exists."""
        return self.cached_path is not None and Path(self.cached_path).is_file()

    def with_cache(self, path: Path, file_size: int) -> "ImageRecord":
        """Copy of this record pointing at a cached file."""
        return self.model_copy(
            update={
                "cached_path": str(path),
                "cached_at": datetime.now(),
                "file_size": file_size,
            }
        )

    def without_cache(self) -> "ImageRecord":
        """Copy of this record with the cache fields cleared."""
        return self.model_copy(
            update={"cached_path": None, "cached_at": None, "file_size": None}
        )
