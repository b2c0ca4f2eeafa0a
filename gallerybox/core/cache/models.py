"""Cache data models and types."""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path


@dataclass(frozen=True)
class CacheEntryInfo:
    """One evictable file under the cache root.

    ``key`` is ``None`` for foreign files that were not written by the store.
    """

    path: Path
    size_bytes: int
    mtime: float
    key: str | None = None

    @property
    def is_foreign(self) -> bool:
        return self.key is None


@dataclass
class CacheStats:
    """Blob cache statistics."""

    total_entries: int = 0
    total_size_bytes: int = 0
    hit_count: int = 0
    miss_count: int = 0
    eviction_count: int = 0
    error_count: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate as percentage."""
        total_requests = self.hit_count + self.miss_count
        if total_requests == 0:
            return 0.0
        return (self.hit_count / total_requests) * 100.0

    @property
    def miss_rate(self) -> float:
        """Calculate cache miss rate as percentage."""
        return 100.0 - self.hit_rate


@dataclass(frozen=True)
class CacheSizeSample:
    """Aggregate cache size observed at one point in time."""

    timestamp: datetime
    size_bytes: int
    operation: str
    change_bytes: int | None = None

    @property
    def size_mb(self) -> float:
        return self.size_bytes / (1024 * 1024)

    @property
    def change_mb(self) -> float:
        return self.change_bytes / (1024 * 1024) if self.change_bytes is not None else 0.0

    @property
    def formatted_size(self) -> str:
        return f"{self.size_mb:.1f}MB"

    @property
    def formatted_change(self) -> str:
        if self.change_bytes is None:
            return "N/A"
        sign = "+" if self.change_mb >= 0 else ""
        return f"{sign}{self.change_mb:.1f}MB"


@dataclass
class EvictionResult:
    """Outcome of one eviction run."""

    size_before: int = 0
    size_after: int = 0
    removed_count: int = 0
    removed_bytes: int = 0
    skipped: bool = False
    removed_keys: list[str] = field(default_factory=list)


class CacheKey:
    """Helper for generating consistent cache keys."""

    @staticmethod
    def from_parts(*parts: str) -> str:
        """Generate cache key from multiple string parts."""
        # Join parts with separator and hash for consistent length
        combined = ":".join(str(part) for part in parts if part)
        return hashlib.sha256(combined.encode()).hexdigest()[:16]

    @staticmethod
    def from_url(url: str) -> str:
        """Generate cache key for a source URL."""
        return CacheKey.from_parts(url)

    @staticmethod
    def is_valid(name: str) -> bool:
        """Whether ``name`` looks like a key produced by this helper."""
        if len(name) != 16:
            return False
        try:
            int(name, 16)
        except ValueError:
            return False
        return name == name.lower()


def url_suffix(url: str) -> str:
    """File extension of the URL path, ignoring the query string."""
    path = url.split("?", 1)[0].split("#", 1)[0]
    suffix = Path(path.rsplit("/", 1)[-1]).suffix
    # Picsum style URLs end in numbers ("/id/1/400/300"), not extensions
    if not suffix or len(suffix) > 6 or not suffix[1:].isalnum() or suffix[1:].isdigit():
        return ""
    return suffix.lower()
