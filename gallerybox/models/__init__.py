"""Data models for Gallerybox."""

from gallerybox.models.base import GalleryboxBaseModel
from gallerybox.models.image import ImageRecord


__all__ = ["GalleryboxBaseModel", "ImageRecord"]
