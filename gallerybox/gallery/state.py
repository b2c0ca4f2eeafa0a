"""Gallery pagination states, events and the transition function.

``reduce_state`` is pure: it never performs I/O and always returns a new
state object. The controller owns sequencing, concurrency and side effects.

Transitions::

    Initial ──LoadInitialStarted──▶ Loading ──PageLoaded──▶ Loaded
                                       └──────LoadFailed──▶ Error
    Loaded ──LoadMoreStarted──▶ LoadingMore ──PageLoaded──▶ Loaded
                                       └──────LoadFailed──▶ Error
"""

from dataclasses import dataclass, field, replace
from typing import Literal

from gallerybox.core.errors import GalleryboxError, GalleryFailure
from gallerybox.models.image import ImageRecord


RetryAction = Literal["initial", "more", "clear"]


class InvalidTransitionError(GalleryboxError):
    """Event that is not valid in the current state."""


# States


@dataclass(frozen=True)
class GalleryState:
    """Fields shared by every state."""

    images: tuple[ImageRecord, ...] = ()
    current_page: int = 1
    has_more_data: bool = True
    cache_size_bytes: int = 0

    @property
    def name(self) -> str:
        return type(self).__name__.removeprefix("Gallery")


@dataclass(frozen=True)
class GalleryInitial(GalleryState):
    pass


@dataclass(frozen=True)
class GalleryLoading(GalleryState):
    pass


@dataclass(frozen=True)
class GalleryLoadingMore(GalleryState):
    pass


@dataclass(frozen=True)
class GalleryLoaded(GalleryState):
    pass


@dataclass(frozen=True)
class GalleryError(GalleryState):
    """Failed request; ``retry`` names the action that failed."""

    message: str = ""
    kind: str = "unknown"
    retry: RetryAction = "initial"


# Events


@dataclass(frozen=True)
class LoadInitialStarted:
    pass


@dataclass(frozen=True)
class LoadMoreStarted:
    pass


@dataclass(frozen=True)
class PageLoaded:
    images: tuple[ImageRecord, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class LoadFailed:
    failure: GalleryFailure


@dataclass(frozen=True)
class ClearFailed:
    failure: GalleryFailure


@dataclass(frozen=True)
class CacheSizeChanged:
    size_bytes: int


GalleryEvent = (
    LoadInitialStarted
    | LoadMoreStarted
    | PageLoaded
    | LoadFailed
    | ClearFailed
    | CacheSizeChanged
)


def _common(state: GalleryState) -> dict[str, object]:
    return {
        "images": state.images,
        "current_page": state.current_page,
        "has_more_data": state.has_more_data,
        "cache_size_bytes": state.cache_size_bytes,
    }


def _invalid(state: GalleryState, event: GalleryEvent) -> InvalidTransitionError:
    return InvalidTransitionError(
        f"{type(event).__name__} is not valid in state {state.name}"
    )


def reduce_state(state: GalleryState, event: GalleryEvent) -> GalleryState:
    """Return the state that follows ``state`` after ``event``.

    Raises:
        InvalidTransitionError: If the event cannot occur in ``state``
    """
    if isinstance(event, CacheSizeChanged):
        return replace(state, cache_size_bytes=event.size_bytes)

    if isinstance(event, LoadInitialStarted):
        if isinstance(state, GalleryLoading):
            raise _invalid(state, event)
        return GalleryLoading(**_common(state))  # type: ignore[arg-type]

    if isinstance(event, LoadMoreStarted):
        if (
            not isinstance(state, GalleryLoaded | GalleryError)
            or not state.has_more_data
            or not state.images
        ):
            raise _invalid(state, event)
        return GalleryLoadingMore(**_common(state))  # type: ignore[arg-type]

    if isinstance(event, PageLoaded):
        if isinstance(state, GalleryLoading):
            return GalleryLoaded(
                images=tuple(event.images),
                current_page=1,
                has_more_data=bool(event.images),
                cache_size_bytes=state.cache_size_bytes,
            )
        if isinstance(state, GalleryLoadingMore):
            if not event.images:
                # Exhausted; only a reload makes more data available again
                return GalleryLoaded(**{**_common(state), "has_more_data": False})  # type: ignore[arg-type]
            return GalleryLoaded(
                images=state.images + tuple(event.images),
                current_page=state.current_page + 1,
                has_more_data=state.has_more_data,
                cache_size_bytes=state.cache_size_bytes,
            )
        raise _invalid(state, event)

    if isinstance(event, LoadFailed):
        if isinstance(state, GalleryLoading):
            retry: RetryAction = "initial"
        elif isinstance(state, GalleryLoadingMore):
            retry = "more"
        else:
            raise _invalid(state, event)
        return GalleryError(
            **_common(state),  # type: ignore[arg-type]
            message=event.failure.user_message(),
            kind=event.failure.kind,
            retry=retry,
        )

    if isinstance(event, ClearFailed):
        return GalleryError(
            **_common(state),  # type: ignore[arg-type]
            message=event.failure.user_message(),
            kind=event.failure.kind,
            retry="clear",
        )

    raise _invalid(state, event)
