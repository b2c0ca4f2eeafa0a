"""Gallery data layer: repository, pagination controller and wiring."""

from gallerybox.gallery.cache_index import CachedImageIndex
from gallerybox.gallery.controller import GalleryController
from gallerybox.gallery.dependencies import GalleryDependencies, build_dependencies
from gallerybox.gallery.diagnostics import (
    CacheFiller,
    CachePopulator,
    FillResult,
    PopulateResult,
)
from gallerybox.gallery.repository import ImageRepository
from gallerybox.gallery.state import (
    GalleryError,
    GalleryInitial,
    GalleryLoaded,
    GalleryLoading,
    GalleryLoadingMore,
    GalleryState,
    reduce_state,
)


__all__ = [
    "CacheFiller",
    "CachePopulator",
    "CachedImageIndex",
    "FillResult",
    "GalleryController",
    "GalleryDependencies",
    "GalleryError",
    "GalleryInitial",
    "GalleryLoaded",
    "GalleryLoading",
    "GalleryLoadingMore",
    "GalleryState",
    "ImageRepository",
    "PopulateResult",
    "build_dependencies",
    "reduce_state",
]
