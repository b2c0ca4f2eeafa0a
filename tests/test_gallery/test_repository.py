"""Tests for the image repository fetch coordination."""

import threading
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from gallerybox.core.errors import CacheFailure, NetworkFailure, ServerFailure
from gallerybox.gallery.repository import ImageRepository, small_thumbnail_url


def _cached_blobs(store) -> list:
    return [entry for entry in store.entries() if not entry.is_foreign]


class TestSmallThumbnailUrl:
    def test_halves_picsum_dimensions(self):
        assert (
            small_thumbnail_url("https://picsum.photos/id/10/2500/1667")
            == "https://picsum.photos/id/10/1250/834"
        )

    def test_other_urls_unchanged(self):
        url = "https://example.com/image.jpg"
        assert small_thumbnail_url(url) == url


class TestInfiniteScrollMode:
    def test_empty_cache_fetches_remote_without_caching(self, repository, image_source, store):
        records = repository.get_images(page=1, limit=30)

        assert image_source.page_calls == [(1, 30)]
        assert len(records) == 30
        repository.wait_for_background(timeout=5)
        assert _cached_blobs(store) == []
        assert image_source.downloads == []

    def test_bulk_fetch_never_writes_to_store(self, repository, store):
        with patch.object(store, "put", wraps=store.put) as mock_put:
            repository.get_images(page=1, limit=30)
            repository.get_images(page=2, limit=30)
            repository.wait_for_background(timeout=5)

        mock_put.assert_not_called()

    def test_fully_cached_page_served_without_remote_call(
        self, repository, image_source, seed_cache, make_record
    ):
        seed_cache([make_record(i, position=i) for i in range(30)])

        records = repository.get_images(page=1, limit=30)

        assert image_source.page_calls == []
        assert [r.id for r in records] == [str(i) for i in range(30)]
        assert all(r.is_cached for r in records)

    def test_partially_cached_page_goes_remote(
        self, repository, image_source, seed_cache, make_record
    ):
        seed_cache([make_record(i, position=i) for i in range(29)])

        repository.get_images(page=1, limit=30)

        assert image_source.page_calls == [(1, 30)]

    def test_second_page_uses_offset(self, repository, image_source, seed_cache, make_record):
        seed_cache([make_record(i, position=i) for i in range(30, 60)])

        records = repository.get_images(page=2, limit=30)

        assert image_source.page_calls == []
        assert records[0].id == "30"

    def test_render_caches_lazily(self, repository, image_source, store, clock):
        record = repository.get_images(page=1, limit=30)[0]

        path = repository.get_single_file(record)

        assert path.is_file()
        assert image_source.downloads == [record.thumbnail_url]
        assert repository.get_single_file(record) == path
        assert len(image_source.downloads) == 1
        assert repository.is_image_cached(record.id)

    def test_render_triggers_size_monitor(self, repository, monitor, clock):
        record = repository.get_images(page=1, limit=30)[0]
        repository.get_single_file(record)

        clock.advance(0)
        assert monitor.size_bytes > 0
        assert monitor.history[-1].operation == "put"

    def test_remote_failure_propagates_unchanged(self, repository, image_source):
        image_source.fail_with = NetworkFailure("offline")
        with pytest.raises(NetworkFailure):
            repository.get_images(page=1, limit=30)

    def test_cache_failure_is_not_reported_as_network(self, repository, store):
        with patch.object(store, "iter_metadata", side_effect=CacheFailure("unreadable")):
            with pytest.raises(CacheFailure):
                repository.get_images(page=1, limit=30)


class TestPaginatedMode:
    def test_small_limit_uses_paginated_mode(self, repository):
        with patch.object(
            repository, "get_paginated_images", return_value=[]
        ) as mock_paginated:
            repository.get_images(page=2, limit=5)
        mock_paginated.assert_called_once_with(page=2, limit=5)

    def test_remote_results_cached_in_background(self, repository, image_source, store):
        records = repository.get_images(page=1, limit=5)
        assert len(records) == 5

        assert repository.wait_for_background(timeout=5)
        assert len(_cached_blobs(store)) == 5
        assert all(repository.is_image_cached(r.id) for r in records)
        assert all("/200/150" in url for url in image_source.downloads)

    def test_single_image_served_from_cache(
        self, repository, image_source, seed_cache, make_record
    ):
        seed_cache([make_record(3, position=3)])

        records = repository.get_paginated_images(page=3, limit=1)

        assert image_source.page_calls == []
        assert [r.id for r in records] == ["3"]
        repository.wait_for_background(timeout=5)

    def test_single_image_miss_goes_remote(self, repository, image_source):
        repository.get_paginated_images(page=3, limit=1)
        assert image_source.page_calls == [(3, 1)]

    def test_background_failures_are_not_raised(self, repository, image_source, store):
        image_source.download_fail_with = ServerFailure("HTTP 500", status_code=500)

        records = repository.get_images(page=1, limit=5)

        assert len(records) == 5
        assert repository.wait_for_background(timeout=5)
        assert _cached_blobs(store) == []

    def test_remote_failure_propagates(self, repository, image_source):
        image_source.fail_with = ServerFailure("HTTP 503", status_code=503)
        with pytest.raises(ServerFailure):
            repository.get_images(page=1, limit=5)


class TestCacheWrites:
    def test_cache_image_small_downloads_half_size(self, repository, image_source, make_record):
        cached = repository.cache_image(make_record(1, position=0), small=True)

        assert image_source.downloads == ["https://picsum.photos/id/1/200/150"]
        assert cached.is_cached
        assert cached.file_size == image_source.blob_size

    def test_cache_image_refreshes_existing_entry(
        self, repository, image_source, make_record
    ):
        cached = repository.cache_image(make_record(1, position=0))
        assert len(image_source.downloads) == 1

        again = repository.cache_image(cached)

        assert again.cached_path == cached.cached_path
        assert len(image_source.downloads) == 1

    def test_cache_image_recaches_evicted_entry(self, repository, image_source, make_record):
        cached = repository.cache_image(make_record(1, position=0))
        repository.clear_cache_to_limit(0)

        again = repository.cache_image(cached.model_copy(update={"cached_path": None}))

        assert again.is_cached
        assert len(image_source.downloads) == 2

    def test_refresh_racing_eviction_leaves_no_orphan_sidecar(
        self, repository, image_source, store, make_record
    ):
        cached = repository.cache_image(make_record(1, position=0))
        key = store.key_for(cached.thumbnail_url)
        real_write_metadata = store.write_metadata

        def evict_then_write(k, metadata):
            # Eviction removes the blob between the hit and the sidecar write
            store.remove_path(store.path_for(k))
            real_write_metadata(k, metadata)

        with patch.object(store, "write_metadata", side_effect=evict_then_write):
            again = repository.cache_image(cached)

        assert again.is_cached
        assert len(image_source.downloads) == 2
        assert store.path_for(key) is not None
        assert store.read_metadata(key) is not None

    def test_missing_file_self_heals(self, repository, image_source, store, make_record):
        cached = repository.cache_image(make_record(4, position=0))
        Path(cached.cached_path).unlink()

        assert repository.get_cached_image("4") is None
        assert repository.get_single_file(cached).is_file()
        assert len(image_source.downloads) == 2

    def test_concurrent_renders_download_once(self, repository, image_source, make_record):
        record = make_record(9, position=0)
        image_source.gate = threading.Event()
        results = []

        def render() -> None:
            results.append(repository.get_single_file(record))

        first = threading.Thread(target=render)
        first.start()
        deadline = time.monotonic() + 5
        while not image_source.downloads and time.monotonic() < deadline:
            time.sleep(0.005)
        second = threading.Thread(target=render)
        second.start()
        time.sleep(0.1)
        image_source.gate.set()
        first.join(timeout=5)
        second.join(timeout=5)

        assert len(image_source.downloads) == 1
        assert len(results) == 2
        assert results[0] == results[1]

    def test_waiting_caller_sees_download_failure(self, repository, image_source, make_record):
        record = make_record(9, position=0)
        image_source.gate = threading.Event()
        image_source.download_fail_with = NetworkFailure("reset")
        errors = []

        def render() -> None:
            try:
                repository.get_single_file(record)
            except NetworkFailure as e:
                errors.append(e)

        threads = [threading.Thread(target=render) for _ in range(2)]
        threads[0].start()
        deadline = time.monotonic() + 5
        while not image_source.downloads and time.monotonic() < deadline:
            time.sleep(0.005)
        threads[1].start()
        time.sleep(0.1)
        image_source.gate.set()
        for thread in threads:
            thread.join(timeout=5)

        assert len(errors) == 2
        assert len(image_source.downloads) == 1


class TestSizeAndEviction:
    def test_clear_to_zero_empties_cache(self, repository, monitor, clock, make_record, store):
        repository.cache_image(make_record(1, position=0))
        repository.wait_for_background(timeout=5)
        clock.advance(1)

        assert repository.clear_cache_to_limit(0) is None
        clock.advance(1)

        assert repository.get_cache_size() == 0
        assert store.data_dir.is_dir()
        assert monitor.history[-1].operation == "clear"
        assert monitor.size_bytes == 0

    def test_clear_to_limit_runs_eviction(self, repository, make_record):
        for i in range(5):
            repository.cache_image(make_record(i, position=i))
        repository.wait_for_background(timeout=5)

        result = repository.clear_cache_to_limit(1)

        assert result is not None
        assert result.removed_count > 0
        assert repository.get_cache_size() <= 1

    def test_writes_stay_within_budget(self, image_source, store, eviction, monitor, make_record):
        repo = ImageRepository(
            image_source,
            store,
            eviction=eviction,
            monitor=monitor,
            max_cache_bytes=1000,
        )
        try:
            for i in range(10):
                repo.cache_image(make_record(i, position=i))
            repo.wait_for_background(timeout=5)
            repo.enforce_budget()

            assert repo.get_cache_size() <= 1000
            # Most recent entry survives LRU eviction
            assert repo.is_image_cached("9")
        finally:
            repo.shutdown()

    def test_clear_failure_is_cache_failure(self, repository, store):
        with patch.object(store, "clear", side_effect=CacheFailure("read-only")):
            with pytest.raises(CacheFailure):
                repository.clear_cache_to_limit(0)
