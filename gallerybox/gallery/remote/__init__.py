"""Remote image source clients."""

from .client import PicsumClient


__all__ = ["PicsumClient"]
