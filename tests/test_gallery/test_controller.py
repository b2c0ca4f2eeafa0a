"""Tests for the gallery pagination controller."""

import threading
import time
from unittest.mock import Mock, patch

import pytest

from gallerybox.core.errors import CacheFailure, NetworkFailure, ServerFailure
from gallerybox.gallery.controller import GalleryController
from gallerybox.gallery.diagnostics import CacheFiller, FillResult
from gallerybox.gallery.repository import ImageRepository
from gallerybox.gallery.state import (
    GalleryError,
    GalleryInitial,
    GalleryLoaded,
    GalleryLoading,
)


@pytest.fixture
def controller(repository, monitor):
    ctrl = GalleryController(repository, monitor=monitor, page_size=30)
    yield ctrl
    ctrl.close()


@pytest.fixture
def mock_repository(make_record):
    repo = Mock(spec=ImageRepository)
    repo.get_images.side_effect = lambda page, limit: [
        make_record(i, position=i) for i in range((page - 1) * limit, page * limit)
    ]
    return repo


def _wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.005)


class TestLoading:
    def test_starts_in_initial_state(self, controller):
        assert isinstance(controller.state, GalleryInitial)
        assert controller.images == []
        assert controller.has_more_data is True

    def test_load_initial(self, controller, image_source):
        assert controller.load_initial() is True

        assert isinstance(controller.state, GalleryLoaded)
        assert len(controller.images) == 30
        assert controller.current_page == 1
        assert controller.has_more_data is True
        assert image_source.page_calls == [(1, 30)]

    def test_load_more_appends(self, controller, image_source):
        controller.load_initial()
        controller.load_more()

        assert len(controller.images) == 60
        assert controller.current_page == 2
        assert image_source.page_calls == [(1, 30), (2, 30)]
        assert [r.position for r in controller.images] == list(range(60))

    def test_load_more_before_initial_is_noop(self, controller, image_source):
        assert controller.load_more() is False
        assert image_source.page_calls == []

    def test_exhausted_listing_stays_exhausted(self, controller, image_source):
        image_source.total = 30
        controller.load_initial()
        controller.load_more()

        assert controller.has_more_data is False
        assert len(controller.images) == 30
        assert controller.current_page == 1

        assert controller.load_more() is False
        assert controller.load_more() is False
        assert controller.has_more_data is False
        assert image_source.page_calls == [(1, 30), (2, 30)]

    def test_clear_and_reload_restores_more_data(self, controller, image_source):
        image_source.total = 30
        controller.load_initial()
        controller.load_more()
        assert controller.has_more_data is False

        image_source.total = 100
        controller.clear_cache()

        assert controller.has_more_data is True
        assert controller.current_page == 1

    def test_state_changes_are_published(self, controller):
        names = []
        unsubscribe = controller.subscribe(lambda state: names.append(state.name))

        controller.load_initial()
        controller.load_more()
        unsubscribe()
        controller.load_more()

        assert names == ["Loading", "Loaded", "LoadingMore", "Loaded"]

    def test_failing_listener_does_not_break_controller(self, controller):
        controller.subscribe(Mock(side_effect=RuntimeError("boom")))
        controller.load_initial()
        assert isinstance(controller.state, GalleryLoaded)


class TestConcurrentRequests:
    def test_double_load_more_issues_one_request(self, controller, image_source):
        controller.load_initial()
        image_source.gate = threading.Event()

        worker = threading.Thread(target=controller.load_more)
        worker.start()
        _wait_for(lambda: len(image_source.page_calls) == 2)

        assert controller.load_more() is False
        image_source.gate.set()
        worker.join(timeout=5)

        assert image_source.page_calls == [(1, 30), (2, 30)]
        assert len(controller.images) == 60

    def test_parallel_load_more_callers(self, controller, image_source):
        controller.load_initial()
        image_source.gate = threading.Event()

        workers = [threading.Thread(target=controller.load_more) for _ in range(5)]
        for worker in workers:
            worker.start()
        _wait_for(lambda: len(image_source.page_calls) >= 2)
        time.sleep(0.05)
        image_source.gate.set()
        for worker in workers:
            worker.join(timeout=5)

        assert image_source.page_calls.count((2, 30)) == 1

    def test_load_initial_while_loading_is_noop(self, controller, image_source):
        image_source.gate = threading.Event()
        worker = threading.Thread(target=controller.load_initial)
        worker.start()
        _wait_for(lambda: isinstance(controller.state, GalleryLoading))

        assert controller.load_initial() is False
        image_source.gate.set()
        worker.join(timeout=5)

        assert image_source.page_calls == [(1, 30)]

    def test_results_after_close_are_discarded(self, controller, image_source):
        listener = Mock()
        controller.subscribe(listener)
        image_source.gate = threading.Event()

        worker = threading.Thread(target=controller.load_initial)
        worker.start()
        _wait_for(lambda: image_source.page_calls)
        controller.close()
        calls_at_close = listener.call_count
        image_source.gate.set()
        worker.join(timeout=5)

        assert isinstance(controller.state, GalleryLoading)
        assert controller.images == []
        assert listener.call_count == calls_at_close
        assert controller.load_initial() is False

    def test_failed_clear_during_load_more_discards_late_page(
        self, controller, repository, image_source
    ):
        controller.load_initial()
        image_source.gate = threading.Event()
        errors = []

        def load_more() -> None:
            try:
                controller.load_more()
            except Exception as e:
                errors.append(e)

        worker = threading.Thread(target=load_more)
        worker.start()
        _wait_for(lambda: len(image_source.page_calls) == 2)
        with patch.object(
            repository, "clear_cache_to_limit", side_effect=CacheFailure("busy")
        ):
            assert controller.clear_cache() is False
        image_source.gate.set()
        worker.join(timeout=5)

        assert errors == []
        state = controller.state
        assert isinstance(state, GalleryError)
        assert state.retry == "clear"
        assert len(state.images) == 30


class TestFailures:
    def test_initial_failure_and_retry(self, controller, image_source):
        image_source.fail_with = NetworkFailure("Network connection failed")
        controller.load_initial()

        state = controller.state
        assert isinstance(state, GalleryError)
        assert state.kind == "network"
        assert state.message == "Network error: Network connection failed"

        image_source.fail_with = None
        assert controller.retry() is True
        assert isinstance(controller.state, GalleryLoaded)
        assert len(controller.images) == 30

    def test_load_more_failure_keeps_images_and_retries_same_page(
        self, controller, image_source
    ):
        controller.load_initial()
        image_source.fail_with = ServerFailure("HTTP 500", status_code=500)
        controller.load_more()

        state = controller.state
        assert isinstance(state, GalleryError)
        assert state.kind == "server"
        assert state.retry == "more"
        assert len(state.images) == 30

        image_source.fail_with = None
        controller.retry()
        assert len(controller.images) == 60
        assert image_source.page_calls[-1] == (2, 30)

    def test_retry_outside_error_state_is_noop(self, controller):
        assert controller.retry() is False

    def test_unexpected_error_becomes_unknown_failure(self, mock_repository):
        mock_repository.get_images.side_effect = KeyError("boom")
        controller = GalleryController(mock_repository, page_size=30)

        controller.load_initial()

        assert isinstance(controller.state, GalleryError)
        assert controller.state.kind == "unknown"


class TestCacheCommands:
    def test_clear_cache_resets_size_and_reloads(self, mock_repository, monitor, clock):
        controller = GalleryController(mock_repository, monitor=monitor, page_size=30)
        controller.load_initial()
        mock_repository.get_images.reset_mock()

        assert controller.clear_cache() is True

        mock_repository.clear_cache_to_limit.assert_called_once_with(0)
        mock_repository.get_images.assert_called_once_with(page=1, limit=30)
        assert controller.cache_size_bytes == 0
        assert controller.cache_history[-1].operation == "clear"
        assert isinstance(controller.state, GalleryLoaded)

    def test_clear_failure_is_cache_error_with_images(self, mock_repository):
        controller = GalleryController(mock_repository, page_size=30)
        controller.load_initial()
        mock_repository.clear_cache_to_limit.side_effect = CacheFailure("Permission denied")

        assert controller.clear_cache() is False

        state = controller.state
        assert isinstance(state, GalleryError)
        assert state.kind == "cache"
        assert state.message == "Cache error: Permission denied"
        assert len(state.images) == 30

    def test_retry_after_clear_failure_clears_again(self, mock_repository):
        controller = GalleryController(mock_repository, page_size=30)
        controller.load_initial()
        mock_repository.clear_cache_to_limit.side_effect = [CacheFailure("busy"), None]
        controller.clear_cache()

        assert controller.retry() is True
        assert mock_repository.clear_cache_to_limit.call_count == 2
        assert isinstance(controller.state, GalleryLoaded)

    def test_cache_size_follows_monitor(self, controller, monitor, clock, store):
        store.put(store.key_for("https://example.com/x"), b"x" * 321)
        monitor.refresh("manual_refresh")
        assert controller.cache_size_bytes == 321

    def test_loading_images_triggers_size_update(self, controller, monitor, clock):
        controller.load_initial()
        assert monitor.is_pending
        clock.advance(0)
        assert monitor.history[-1].operation == "load_images"

    def test_fill_cache_uses_filler_and_refreshes(self, mock_repository, monitor):
        filler = Mock(spec=CacheFiller)
        filler.fill.return_value = FillResult(written=3, bytes_written=300, final_size=300)
        controller = GalleryController(
            mock_repository, monitor=monitor, page_size=30, filler=filler
        )

        result = controller.fill_cache()

        assert result.written == 3
        assert controller.cache_history[-1].operation == "fast_fill"

    def test_fill_cache_without_filler(self, mock_repository):
        controller = GalleryController(mock_repository, page_size=30)
        with pytest.raises(RuntimeError):
            controller.fill_cache()
