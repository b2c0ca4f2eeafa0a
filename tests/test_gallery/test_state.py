"""Tests for the gallery state transition function."""

import pytest

from gallerybox.core.errors import CacheFailure, NetworkFailure
from gallerybox.gallery.state import (
    CacheSizeChanged,
    ClearFailed,
    GalleryError,
    GalleryInitial,
    GalleryLoaded,
    GalleryLoading,
    GalleryLoadingMore,
    InvalidTransitionError,
    LoadFailed,
    LoadInitialStarted,
    LoadMoreStarted,
    PageLoaded,
    reduce_state,
)


@pytest.fixture
def page(make_record):
    def _page(start: int, count: int = 3) -> tuple:
        return tuple(make_record(i, position=i) for i in range(start, start + count))

    return _page


@pytest.fixture
def loaded(page):
    return GalleryLoaded(images=page(0), current_page=1, has_more_data=True)


class TestReduceState:
    def test_initial_load(self, page):
        state = reduce_state(GalleryInitial(), LoadInitialStarted())
        assert isinstance(state, GalleryLoading)

        state = reduce_state(state, PageLoaded(page(0)))
        assert isinstance(state, GalleryLoaded)
        assert state.current_page == 1
        assert state.has_more_data is True
        assert len(state.images) == 3

    def test_empty_initial_page_has_no_more_data(self):
        state = reduce_state(GalleryLoading(), PageLoaded(()))
        assert isinstance(state, GalleryLoaded)
        assert state.has_more_data is False

    def test_load_more_appends_and_increments_page(self, loaded, page):
        state = reduce_state(loaded, LoadMoreStarted())
        assert isinstance(state, GalleryLoadingMore)
        assert state.images == loaded.images

        state = reduce_state(state, PageLoaded(page(3)))
        assert [r.id for r in state.images] == ["0", "1", "2", "3", "4", "5"]
        assert state.current_page == 2

    def test_empty_page_exhausts_listing(self, loaded):
        state = reduce_state(reduce_state(loaded, LoadMoreStarted()), PageLoaded(()))

        assert isinstance(state, GalleryLoaded)
        assert state.has_more_data is False
        assert state.current_page == 1
        with pytest.raises(InvalidTransitionError):
            reduce_state(state, LoadMoreStarted())

    def test_initial_failure(self):
        state = reduce_state(GalleryLoading(), LoadFailed(NetworkFailure("offline")))

        assert isinstance(state, GalleryError)
        assert state.kind == "network"
        assert state.message == "Network error: offline"
        assert state.retry == "initial"

    def test_load_more_failure_keeps_images(self, loaded):
        state = reduce_state(loaded, LoadMoreStarted())
        state = reduce_state(state, LoadFailed(NetworkFailure("offline")))

        assert isinstance(state, GalleryError)
        assert state.retry == "more"
        assert state.images == loaded.images

    def test_clear_failure_keeps_images(self, loaded):
        state = reduce_state(loaded, ClearFailed(CacheFailure("read-only")))

        assert isinstance(state, GalleryError)
        assert state.kind == "cache"
        assert state.retry == "clear"
        assert state.message == "Cache error: read-only"
        assert state.images == loaded.images

    def test_cache_size_keeps_state_type(self, loaded):
        state = reduce_state(loaded, CacheSizeChanged(1234))
        assert isinstance(state, GalleryLoaded)
        assert state.cache_size_bytes == 1234
        assert state.images == loaded.images

    def test_reduce_returns_new_object(self, loaded):
        state = reduce_state(loaded, CacheSizeChanged(1))
        assert state is not loaded
        assert loaded.cache_size_bytes == 0

    @pytest.mark.parametrize(
        ("state", "event"),
        [
            (GalleryLoading(), LoadInitialStarted()),
            (GalleryInitial(), LoadMoreStarted()),
            (GalleryLoading(), LoadMoreStarted()),
            (GalleryInitial(), PageLoaded(())),
            (GalleryInitial(), LoadFailed(NetworkFailure("x"))),
            (GalleryError(retry="initial"), LoadMoreStarted()),
        ],
    )
    def test_invalid_transitions(self, state, event):
        with pytest.raises(InvalidTransitionError):
            reduce_state(state, event)

    def test_state_name(self):
        assert GalleryLoadingMore().name == "LoadingMore"
