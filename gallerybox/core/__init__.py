from .errors import (
    CacheFailure,
    ConfigError,
    GalleryboxError,
    GalleryFailure,
    NetworkFailure,
    ServerFailure,
    UnknownFailure,
)
from .logging import get_struct_logger, setup_logging


__all__ = [
    "setup_logging",
    "get_struct_logger",
    "GalleryboxError",
    "GalleryFailure",
    "NetworkFailure",
    "ServerFailure",
    "CacheFailure",
    "UnknownFailure",
    "ConfigError",
]
