"""Error types for Gallerybox.

Failures raised by the data layer are grouped by the source that produced
them. They travel through the repository and controller unchanged, so a
cache problem is never reported as a network problem and vice versa.
"""

from typing import Any


class GalleryboxError(Exception):
    """Base class for all Gallerybox errors."""


class ConfigError(GalleryboxError):
    """Invalid or unreadable configuration."""


class GalleryFailure(GalleryboxError):
    """Base class for data-source failures.

    Attributes:
        kind: Short label identifying the failing source
        message: Human readable description
    """

    kind = "unknown"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def user_message(self) -> str:
        """Message suitable for display in the UI layer."""
        return f"{self.kind.capitalize()} error: {self.message}"


class NetworkFailure(GalleryFailure):
    """Transport or connectivity failure."""

    kind = "network"


class ServerFailure(GalleryFailure):
    """Non-success response or malformed payload from the remote source."""

    kind = "server"

    def __init__(
        self, message: str, status_code: int | None = None, **context: Any
    ) -> None:
        super().__init__(message, **context)
        self.status_code = status_code


class CacheFailure(GalleryFailure):
    """Disk I/O error or unavailable cache directory."""

    kind = "cache"


class UnknownFailure(GalleryFailure):
    """Failure that does not fit any other category."""

    kind = "unknown"


__all__ = [
    "GalleryboxError",
    "ConfigError",
    "GalleryFailure",
    "NetworkFailure",
    "ServerFailure",
    "CacheFailure",
    "UnknownFailure",
]
