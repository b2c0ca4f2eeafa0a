"""Configuration for Gallerybox."""

from gallerybox.config.models import GallerySettings
from gallerybox.config.settings import config_search_paths, load_settings


__all__ = ["GallerySettings", "config_search_paths", "load_settings"]
