"""Protocol for remote image sources."""

from typing import Protocol, runtime_checkable

from gallerybox.models.image import ImageRecord


@runtime_checkable
class ImageSourceProtocol(Protocol):
    """Paged listing of remote images plus blob download.

    Pages are 1-indexed. A page shorter than ``limit``, or an empty page,
    means the listing is exhausted. Implementations raise ``NetworkFailure``,
    ``ServerFailure`` or ``UnknownFailure`` and own their request timeouts.
    """

    def fetch_page(self, page: int, limit: int) -> list[ImageRecord]:
        """Fetch one page of image records."""
        ...

    def download(self, url: str) -> bytes:
        """Download the bytes behind ``url``."""
        ...
