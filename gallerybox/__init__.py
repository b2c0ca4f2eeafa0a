"""Gallerybox - paged image gallery with a size-bounded image cache."""

from gallerybox.core.errors import (
    CacheFailure,
    GalleryFailure,
    NetworkFailure,
    ServerFailure,
    UnknownFailure,
)
from gallerybox.models.image import ImageRecord


__all__ = [
    "CacheFailure",
    "GalleryFailure",
    "ImageRecord",
    "NetworkFailure",
    "ServerFailure",
    "UnknownFailure",
]
