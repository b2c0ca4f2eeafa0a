"""Core test fixtures for the gallerybox project."""

import logging
import threading
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from gallerybox.core.cache import (
    BlobCacheStore,
    CacheSizeMonitor,
    LRUEvictionPolicy,
    create_size_monitor,
)
from gallerybox.gallery.repository import ImageRepository
from gallerybox.models.image import ImageRecord


# ---- Fakes ----


class FakeScheduledCall:
    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """Manually advanced clock; scheduled calls run inside ``advance``."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.calls: list[FakeScheduledCall] = []

    def monotonic(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeScheduledCall:
        call = FakeScheduledCall(self.now + max(delay, 0.0), callback)
        self.calls.append(call)
        return call

    @property
    def pending(self) -> list[FakeScheduledCall]:
        return [call for call in self.calls if not call.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [c for c in self.pending if c.due <= target]
            if not due:
                break
            call = min(due, key=lambda c: c.due)
            self.calls.remove(call)
            self.now = max(self.now, call.due)
            call.callback()
        self.now = target


class FakeImageSource:
    """In-memory paged listing of Picsum-style records.

    ``gate`` blocks every call until set, for concurrency tests.
    """

    def __init__(self, total: int = 100, blob_size: int = 100):
        self.total = total
        self.blob_size = blob_size
        self.page_calls: list[tuple[int, int]] = []
        self.downloads: list[str] = []
        self.fail_with: Exception | None = None
        self.download_fail_with: Exception | None = None
        self.gate: threading.Event | None = None
        self._lock = threading.Lock()

    @staticmethod
    def item(index: int) -> dict[str, Any]:
        return {
            "id": index,
            "author": f"Author {index}",
            "width": 400,
            "height": 300,
            "download_url": f"https://picsum.photos/id/{index}/400/300",
        }

    def fetch_page(self, page: int, limit: int) -> list[ImageRecord]:
        with self._lock:
            self.page_calls.append((page, limit))
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.fail_with is not None:
            raise self.fail_with
        start = (page - 1) * limit
        return [
            ImageRecord.from_api(self.item(i), position=i)
            for i in range(start, min(start + limit, self.total))
        ]

    def download(self, url: str) -> bytes:
        with self._lock:
            self.downloads.append(url)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.download_fail_with is not None:
            raise self.download_fail_with
        return b"\xff" * self.blob_size


# ---- Base Fixtures ----


@pytest.fixture
def cli_runner() -> CliRunner:
    """Return a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def image_source() -> FakeImageSource:
    return FakeImageSource()


@pytest.fixture
def cache_root(tmp_path: Path) -> Path:
    return tmp_path / "image_cache"


@pytest.fixture
def store(cache_root: Path) -> BlobCacheStore:
    return BlobCacheStore(cache_root)


@pytest.fixture
def eviction(store: BlobCacheStore) -> LRUEvictionPolicy:
    return LRUEvictionPolicy(store)


@pytest.fixture
def monitor(store: BlobCacheStore, clock: FakeClock) -> CacheSizeMonitor:
    return create_size_monitor(store, debounce_interval_ms=100, clock=clock)


@pytest.fixture
def repository(
    image_source: FakeImageSource,
    store: BlobCacheStore,
    eviction: LRUEvictionPolicy,
    monitor: CacheSizeMonitor,
) -> Generator[ImageRepository, None, None]:
    repo = ImageRepository(
        image_source,
        store,
        eviction=eviction,
        monitor=monitor,
        bulk_page_size=30,
        max_cache_bytes=1024 * 1024,
        background_workers=2,
    )
    try:
        yield repo
    finally:
        repo.shutdown(wait=True)


@pytest.fixture
def make_record() -> Callable[..., ImageRecord]:
    """Factory for Picsum-style image records."""

    def _make(index: int, position: int | None = None) -> ImageRecord:
        return ImageRecord.from_api(FakeImageSource.item(index), position=position)

    return _make


@pytest.fixture
def seed_cache(store: BlobCacheStore) -> Callable[[list[ImageRecord]], None]:
    """Write records and blobs straight into the store, as a previous run would."""

    def _seed(records: list[ImageRecord], blob: bytes = b"\x01" * 10) -> None:
        for record in records:
            key = store.key_for(record.thumbnail_url)
            store.put(key, blob, metadata=record.to_dict(), suffix=".jpg")

    return _seed


# ---- Test Isolation Fixtures ----


@pytest.fixture
def isolated_cli_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> dict[str, Path]:
    """Isolate CLI tests from the user's config, cache and environment.

    Usage:
        def test_cli_command(isolated_cli_environment, cli_runner):
            result = cli_runner.invoke(app, ["cache", "show"])
    """
    cache_home = tmp_path / "xdg_cache"
    config_home = tmp_path / "xdg_config"
    work_dir = tmp_path / "work"
    for directory in (cache_home, config_home, work_dir):
        directory.mkdir()

    for name in [
        "GALLERYBOX_MAX_CACHE_BYTES",
        "GALLERYBOX_CACHE_PATH",
        "GALLERYBOX_PAGE_SIZE",
        "GALLERYBOX_LOG_LEVEL",
        "GALLERYBOX_API_BASE_URL",
    ]:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CACHE_HOME", str(cache_home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(work_dir)

    return {
        "cache_root": cache_home / "gallerybox" / "image_cache",
        "config_dir": config_home / "gallerybox",
        "work_dir": work_dir,
        "temp_dir": tmp_path,
    }


@pytest.fixture(autouse=True)
def reset_root_logging() -> Generator[None, None, None]:
    """Restore root logger handlers replaced by ``setup_logging`` in a test."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level

    yield

    for handler in root_logger.handlers:
        if handler not in handlers:
            handler.close()
    root_logger.handlers = handlers
    root_logger.setLevel(level)
