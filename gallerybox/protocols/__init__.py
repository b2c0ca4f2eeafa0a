"""Protocol definitions for Gallerybox collaborators.

These protocols use Python's typing.Protocol system with the
@runtime_checkable decorator to enable both static type checking and
runtime isinstance() checks.
"""

from .image_source_protocol import ImageSourceProtocol


__all__ = ["ImageSourceProtocol"]
